"""Model file headers and kernel call results."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from nnkern.span_reader import SpanReader

MODEL_IDENTIFIER = int.from_bytes(b"KMDL", "big")
MODEL_VERSION = 4

_MODEL_HEADER = struct.Struct("<10I")
_NODE_HEADER = struct.Struct("<2I")


class ModelTarget(enum.IntEnum):
    CPU = 0
    K210 = 1


class KernelCallResult(enum.IntEnum):
    DONE = 0
    ASYNC = 1
    ERROR = 2


@dataclass(frozen=True)
class ModelHeader:
    """Fixed header at the start of a compiled model."""

    identifier: int = MODEL_IDENTIFIER
    version: int = MODEL_VERSION
    flags: int = 0
    target: ModelTarget = ModelTarget.CPU
    constants: int = 0
    main_mem: int = 0
    nodes: int = 0
    inputs: int = 0
    outputs: int = 0
    reserved0: int = 0

    def serialize(self) -> bytes:
        return _MODEL_HEADER.pack(
            self.identifier,
            self.version,
            self.flags,
            int(self.target),
            self.constants,
            self.main_mem,
            self.nodes,
            self.inputs,
            self.outputs,
            self.reserved0,
        )

    @classmethod
    def deserialize(cls, reader: SpanReader) -> ModelHeader:
        (identifier, version, flags, target, constants, main_mem, nodes, inputs, outputs,
         reserved0) = reader.read(_MODEL_HEADER.format)
        return cls(
            identifier=identifier,
            version=version,
            flags=flags,
            target=ModelTarget(target),
            constants=constants,
            main_mem=main_mem,
            nodes=nodes,
            inputs=inputs,
            outputs=outputs,
            reserved0=reserved0,
        )


@dataclass(frozen=True)
class NodeHeader:
    """Header preceding each node body: its opcode and the body's size in bytes."""

    opcode: int
    body_size: int

    def serialize(self) -> bytes:
        return _NODE_HEADER.pack(int(self.opcode), self.body_size)

    @classmethod
    def deserialize(cls, reader: SpanReader) -> NodeHeader:
        opcode, body_size = reader.read(_NODE_HEADER.format)
        return cls(opcode, body_size)