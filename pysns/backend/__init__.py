# flake8: noqa

from .base import *
from .agent import *
