"""Typed encoders/decoders for contract functions and events.

Each codec is built once from its canonical signature; selectors and topics
are precomputed so the hot path only runs eth_abi.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence

from eth_abi import decode, encode
from eth_utils import event_signature_to_log_topic, function_signature_to_4byte_selector


@dataclass(frozen=True)
class FunctionCodec:
    """Calldata encoder and return-data decoder for one contract function."""

    name: str
    input_types: tuple[str, ...]
    output_types: tuple[str, ...]
    signature: str = field(init=False)
    selector: bytes = field(init=False)

    def __post_init__(self) -> None:
        signature = f"{self.name}({','.join(self.input_types)})"
        object.__setattr__(self, "signature", signature)
        object.__setattr__(self, "selector", function_signature_to_4byte_selector(signature))

    def encode(self, args: Sequence[Any]) -> bytes:
        """Build calldata: 4-byte selector followed by ABI-encoded arguments."""
        return self.selector + encode(list(self.input_types), list(args))

    def decode(self, data: bytes) -> tuple[Any, ...]:
        """Decode return data into a tuple of output values.

        Raises:
            eth_abi.exceptions.DecodingError: If data does not match output_types
        """
        return decode(list(self.output_types), bytes(data))


@dataclass(frozen=True)
class EventParam:
    name: str
    type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventCodec:
    """Log decoder for one event, splitting indexed and data parameters."""

    name: str
    params: tuple[EventParam, ...]
    signature: str = field(init=False)
    topic: bytes = field(init=False)

    def __post_init__(self) -> None:
        signature = f"{self.name}({','.join(p.type for p in self.params)})"
        object.__setattr__(self, "signature", signature)
        object.__setattr__(self, "topic", event_signature_to_log_topic(signature))

    def matches(self, topics: Sequence[bytes]) -> bool:
        return len(topics) > 0 and bytes(topics[0]) == self.topic

    def decode(self, topics: Sequence[bytes], data: bytes) -> dict[str, Any]:
        """Decode a log into a mapping of parameter name to value.

        Args:
            topics: Log topics; topics[0] is the event signature hash
            data: Non-indexed parameters, ABI-encoded

        Returns:
            Decoded parameters keyed by name

        Raises:
            ValueError: If topic0, the topic count or a topic length is wrong
            eth_abi.exceptions.DecodingError: If a value is malformed
        """
        indexed = [p for p in self.params if p.indexed]
        non_indexed = [p for p in self.params if not p.indexed]

        if not self.matches(topics):
            raise ValueError(f"Log is not a {self.signature} event")
        if len(topics) != len(indexed) + 1:
            raise ValueError(
                f"{self.signature} expects {len(indexed) + 1} topics, got {len(topics)}"
            )

        values: dict[str, Any] = {}
        for param, topic in zip(indexed, topics[1:]):
            if len(topic) != 32:
                raise ValueError(f"Topic for {param.name} is {len(topic)} bytes, expected 32")
            (values[param.name],) = decode([param.type], bytes(topic))

        if non_indexed:
            decoded = decode([p.type for p in non_indexed], bytes(data))
            values.update(zip((p.name for p in non_indexed), decoded))

        return values
