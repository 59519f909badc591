# flake8: noqa

from .backend import *
from .config import *
from .context import *
from .deploy import *
from .exception import *
from .hash import *
from .key import *
from .network import *
from .neurons import *
from .participants import *
from .polling import *
from .principal import *
from .proposal import *
from .record import *
from .sns_config import *
from .staking import *
from .swap import *
