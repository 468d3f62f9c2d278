"""
Utility functions.
"""

import re
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Union
from hexbytes import HexBytes
from eth_typing.encoding import HexStr
from web3 import Web3
from web3.datastructures import AttributeDict

from chainsync.errors import ConfigurationError

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class Web3JsonEncoder(json.JSONEncoder):
    """
    Custom encoder to parse `Web3 <https://web3py.readthedocs.io/en/stable/>`_ responses.
    By default `Web3 <https://web3py.readthedocs.io/en/stable/>`_ returns
    responses as ``AttributeDict`` with binary values.
    :class:`Web3JsonEncoder` transforms it into the :code:`0x...`
    hex format.
    """

    def default(self, o: Any) -> Union[Dict[Any, Any], HexStr]:
        """
        Convert Web3 response to ``dict``
        """
        if isinstance(o, AttributeDict):
            return {k: v for k, v in o.items()}
        if isinstance(o, (HexBytes, bytes, bytearray)):
            return HexStr(Web3.to_hex(HexBytes(o)))
        return json.JSONEncoder.default(self, o)


def json_response(response: Any) -> str:
    """
    Convert a web3 response (``AttributeDict``, list, ...) to standard json string

    Args:
        response: a `Web3 <https://web3py.readthedocs.io/en/stable/>`_ response

    Returns:
        json string
    """
    return json.dumps(response, cls=Web3JsonEncoder)


def normalize_response(response: Any) -> Any:
    """
    Web3 response as plain python values, bytes are converted to ``0x...`` strings.
    """
    return json.loads(json_response(response))


def short_address(address: str) -> str:
    """
    Converts ethereum address to short version (for display purposes only).

    Args:
        address: Ethereum address to shorten

    Returns:
        Short version of the address.

    Examples:
        ::

            print(short_address("0x6B175474E89094C44Da98b954EedeAC495271d0F"))
            # 0x6B17...1d0F

    """
    return f"{address[:6]}...{address[38:]}"


def validate_address(address: str) -> str:
    """
    Check the ``0x`` + 40 hex chars format.

    Returns:
        The address in lowercase

    Raises:
        ConfigurationError: if the address is malformed
    """
    if not isinstance(address, str) or not ADDRESS_RE.match(address):
        raise ConfigurationError(f"Invalid Ethereum address format: {address!r}")
    return address.lower()


def format_ether(wei: int) -> str:
    """
    Format a wei amount as a decimal ether string.

    Examples:
        ::

            format_ether(10**18)  # "1.0"
            format_ether(15 * 10**17)  # "1.5"
    """
    ether = Decimal(Web3.from_wei(int(wei), "ether"))
    text = format(ether.normalize(), "f")
    return text if "." in text else f"{text}.0"


def utc_now() -> str:
    """
    Current UTC time in ISO 8601 format.
    """
    return datetime.now(timezone.utc).isoformat()
