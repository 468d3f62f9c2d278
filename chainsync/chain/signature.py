from __future__ import annotations
import re
from typing import Any, Dict, List, NamedTuple, Tuple
from eth_abi import decode, grammar
from eth_abi.exceptions import ABITypeError, DecodingError, ParseError
from eth_utils import event_signature_to_log_topic
from hexbytes import HexBytes
from web3 import Web3

from chainsync.errors import ConfigurationError, DecodeError

SIGNATURE_RE = re.compile(r"^\s*(?:event\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*\((.*)\)\s*;?\s*$")
NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SENDER_NAMES = ("from", "sender", "src", "owner")
RECIPIENT_NAMES = ("to", "recipient", "dst", "spender")
VALUE_NAMES = ("value", "amount", "wad")

MAX_INDEXED_FIELDS = 3

BASE_TYPES = ("address", "bool", "bytes", "string", "int", "uint", "fixed", "ufixed")


class EventField(NamedTuple):
    """
    One declared event parameter.
    """

    #: Canonical abi type (``uint`` is normalized to ``uint256``)
    type: str
    #: Parameter name
    name: str
    #: ``True`` if the value lives in the log topics
    indexed: bool


class DecodedLog(NamedTuple):
    """
    Decoded event log. The keys of ``args`` are exactly the
    declared field names of the signature named ``name``.
    """

    name: str
    args: Dict[str, Any]


class EventSignature:
    """
    Event declaration parsed and validated once, at configuration time.

    Args:
        text: A human-readable declaration like
              ``Transfer(address indexed from, address indexed to, uint256 value)``.
              The leading ``event`` keyword is optional.

    Raises:
        ConfigurationError: if the declaration is malformed

    Examples:
        ::

            sig = EventSignature("Transfer(address indexed from, address indexed to, uint256 value)")
            sig.name  # "Transfer"
            sig.topic  # "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
            sig.decode(log)  # DecodedLog(name="Transfer", args={"from": ..., "to": ..., "value": ...})
    """

    #: Original declaration
    text: str
    #: Event name
    name: str
    #: Declared parameters, in order
    fields: Tuple[EventField, ...]

    def __init__(self, text: str):
        self.text = text
        self.name, self.fields = _parse(text)
        #: Field stored as the event sender
        self.sender_field = self._field_for_role(SENDER_NAMES, ("address",))
        #: Field stored as the event recipient
        self.recipient_field = self._field_for_role(RECIPIENT_NAMES, ("address",))
        #: Field stored as the event value
        self.value_field = self._field_for_role(VALUE_NAMES, ("uint", "int"))

    @property
    def canonical(self) -> str:
        """
        Declaration reduced to ``Name(type1,type2,...)``
        """
        return f"{self.name}({','.join(f.type for f in self.fields)})"

    @property
    def topic(self) -> str:
        """
        Keccak hash of the canonical declaration (topic0 of every matching log)
        """
        return Web3.to_hex(event_signature_to_log_topic(self.canonical))

    @property
    def indexed_fields(self) -> List[EventField]:
        return [f for f in self.fields if f.indexed]

    @property
    def data_fields(self) -> List[EventField]:
        return [f for f in self.fields if not f.indexed]

    def decode(self, log: Dict[str, Any]) -> DecodedLog:
        """
        Decode log arguments against the declared fields.

        Args:
            log: a normalized log (see :meth:`chainsync.chain.ChainClient.query_logs`)

        Returns:
            Decoded log

        Raises:
            DecodeError: if the log doesn't match the declaration
        """
        topics = log.get("topics") or []
        if len(topics) == 0 or str(topics[0]).lower() != self.topic:
            raise DecodeError(f"Log is not a {self.canonical} event")
        indexed = self.indexed_fields
        if len(topics) != len(indexed) + 1:
            raise DecodeError(
                f"Expected {len(indexed) + 1} topics for {self.canonical}, got {len(topics)}"
            )

        args = {}
        try:
            for field, topic in zip(indexed, topics[1:]):
                if grammar.parse(field.type).is_dynamic:
                    # only the hash of a dynamic value is stored in topics
                    args[field.name] = str(topic).lower()
                else:
                    args[field.name] = decode([field.type], HexBytes(topic))[0]
            data_fields = self.data_fields
            values = decode(
                [f.type for f in data_fields], HexBytes(log.get("data") or "0x")
            )
            for field, value in zip(data_fields, values):
                args[field.name] = value
        except (DecodingError, ValueError, TypeError, OverflowError) as e:
            raise DecodeError(f"Malformed {self.canonical} log: {e}") from e

        ordered = {f.name: _plain(args[f.name]) for f in self.fields}
        return DecodedLog(self.name, ordered)

    def _field_for_role(
        self, names: Tuple[str, ...], type_prefixes: Tuple[str, ...]
    ) -> str | None:
        by_name = {f.name: f for f in self.fields}
        for n in names:
            field = by_name.get(n)
            if field is not None and _is_scalar_of(field.type, type_prefixes):
                return field.name
        return None

    def __eq__(self, other):
        if type(other) is type(self):
            return self.canonical == other.canonical and self.fields == other.fields
        return False

    def __repr__(self):
        return f"EventSignature({self.text!r})"


def _parse(text: str) -> Tuple[str, Tuple[EventField, ...]]:
    if not isinstance(text, str):
        raise ConfigurationError("Event signature must be a string")
    match = SIGNATURE_RE.match(text)
    if not match:
        raise ConfigurationError(f"Malformed event signature: {text!r}")
    name, params = match.group(1), match.group(2).strip()

    fields = []
    if params:
        for i, param in enumerate(params.split(",")):
            fields.append(_parse_field(param, i, text))

    names = [f.name for f in fields]
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Duplicate field names in {text!r}")
    if len([f for f in fields if f.indexed]) > MAX_INDEXED_FIELDS:
        raise ConfigurationError(
            f"At most {MAX_INDEXED_FIELDS} indexed fields are allowed: {text!r}"
        )
    return name, tuple(fields)


def _parse_field(param: str, position: int, text: str) -> EventField:
    tokens = param.split()
    if len(tokens) == 0:
        raise ConfigurationError(f"Empty parameter #{position} in {text!r}")
    type_, rest = tokens[0], tokens[1:]
    indexed = False
    if rest and rest[0] == "indexed":
        indexed = True
        rest = rest[1:]
    if len(rest) != 1 or not NAME_RE.match(rest[0]):
        raise ConfigurationError(f"Parameter #{position} needs a name: {text!r}")

    try:
        normalized = grammar.normalize(type_)
        parsed = grammar.parse(normalized)
        parsed.validate()
    except (ParseError, ABITypeError) as e:
        raise ConfigurationError(f"Unknown abi type {type_!r} in {text!r}") from e
    if isinstance(parsed, grammar.TupleType):
        raise ConfigurationError(f"Tuple parameters are not supported: {text!r}")
    if not parsed.base in BASE_TYPES:
        raise ConfigurationError(f"Unknown abi type {type_!r} in {text!r}")
    return EventField(normalized, rest[0], indexed)


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value))
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _is_scalar_of(type_: str, prefixes: Tuple[str, ...]) -> bool:
    if "[" in type_:
        return False
    for p in prefixes:
        if type_ == p or (type_.startswith(p) and type_[len(p) :].isdigit()):
            return True
    return False
