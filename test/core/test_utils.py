import json
import pytest
from hexbytes import HexBytes
from web3.datastructures import AttributeDict

from chainsync.errors import ConfigurationError
from chainsync.utils import (
    format_ether,
    json_response,
    normalize_response,
    short_address,
    validate_address,
)


def test_validate_address():
    assert (
        validate_address("0x5777D92f208679DB4b9778590Fa3CAB3aC9e2168")
        == "0x5777d92f208679db4b9778590fa3cab3ac9e2168"
    )
    for bad in ["", "0x1234", "5777d92f208679db4b9778590fa3cab3ac9e2168", None, "0x" + "g" * 40]:
        with pytest.raises(ConfigurationError):
            validate_address(bad)


def test_format_ether():
    assert format_ether(10**18) == "1.0"
    assert format_ether(15 * 10**17) == "1.5"
    assert format_ether(100 * 10**18) == "100.0"
    assert format_ether(0) == "0.0"
    assert format_ether(1) == "0.000000000000000001"


def test_normalize_response():
    response = AttributeDict(
        {"hash": HexBytes("0xab"), "logs": [AttributeDict({"data": b"\x01\x02"})], "number": 5}
    )
    assert normalize_response(response) == {
        "hash": "0xab",
        "logs": [{"data": "0x0102"}],
        "number": 5,
    }
    assert json.loads(json_response([HexBytes("0x00")])) == ["0x00"]


def test_short_address():
    assert short_address("0x6B175474E89094C44Da98b954EedeAC495271d0F") == "0x6B17...1d0F"
