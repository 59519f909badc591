from pysns.sns_config import DEFAULT_LOGO, YEAR, SnsParameters, load_logo


def test_load_logo(tmp_path):
    assert load_logo() == DEFAULT_LOGO
    assert load_logo(tmp_path / "missing.png") == DEFAULT_LOGO
    path = tmp_path / "logo.png"
    path.write_bytes(b"\x89PNG")
    assert load_logo(path) == "data:image/png;base64,iVBORw=="


def test_defaults():
    params = SnsParameters()
    assert params.neuron_maximum_dissolve_delay == 8 * YEAR
    assert params.minimum_direct_participation_icp == 500_000_000
    assert params.restricted_countries == ["AQ"]
