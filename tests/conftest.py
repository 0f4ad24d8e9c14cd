import pytest

from fieldcrypt_core.config import CryptoOptions
from fieldcrypt_core.utils import b64e

SEPARATED_KEY = b64e(b"separated-secret")
AGGREGATED_KEY = b64e(bytes(range(32)))


def make_options(**extra) -> CryptoOptions:
    return CryptoOptions.from_dict({
        "separated": {"key": SEPARATED_KEY},
        "aggregated": {"key": AGGREGATED_KEY},
        **extra,
    })


@pytest.fixture
def options():
    return make_options()
