import pytest

from sigtree.config import VerifierConfig
from sigtree.constants import KEYBASE_ROOT_KID


def test_defaults():
    config = VerifierConfig.from_env(environ={})
    assert config.root_kid == KEYBASE_ROOT_KID
    assert config.request_timeout == 30.0


def test_overrides():
    config = VerifierConfig.from_env(environ={
        "SIGTREE_API_SERVER_URI": "https://keybase.test/",
        "SIGTREE_REQUEST_TIMEOUT": "2.5",
        "OTHER_ROOT_KID": "ignored",
    })
    assert config.api_server_uri == "https://keybase.test/"
    assert config.request_timeout == 2.5
    assert config.root_kid == KEYBASE_ROOT_KID


def test_custom_prefix():
    config = VerifierConfig.from_env(prefix="KB_", environ={"KB_STELLAR_ADDRESS": "GTEST"})
    assert config.stellar_address == "GTEST"


def test_bad_timeout():
    with pytest.raises(ValueError):
        VerifierConfig.from_env(environ={"SIGTREE_REQUEST_TIMEOUT": "soon"})
