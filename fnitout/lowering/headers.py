"""
Knitout magic line and comment-header block.

read_header consumes the ``;!knitout-N`` line and the contiguous ``;;Key: value``
lines after it, returning a KnitoutHeader and the index of the first body line.

Fatal (raise FatalLoweringError): bad magic line, missing Carriers header,
Gauge that is not a positive number.
Warnings (reported to the sink): newer version, unknown or repeated header,
header-like line without ``: ``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from types import MappingProxyType

from fnitout.diagnostics import DiagnosticSink, FatalLoweringError

from .config import LoweringConfig

logger = logging.getLogger(__name__)

_MAGIC_RE = re.compile(r"^;!knitout-(\d+)$")
_GAUGE_RE = re.compile(r"^\d+\.?\d*$")
_CARRIER_NUMBER_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class KnitoutHeader:
    """
    Everything the body of a knitout file needs from its header block.

    Attributes:
        version: Version number from the magic line.
        carriers: Carrier names in the order they were declared.
        yarn_ids: Carrier name → formal knitout yarn id.
        gauge: Needles per inch.
        headers: Raw header values by name (last value wins).
    """

    version: int
    carriers: tuple[str, ...]
    yarn_ids: MappingProxyType[str, int]
    gauge: float
    headers: MappingProxyType[str, str]

    def __post_init__(self) -> None:
        if isinstance(self.yarn_ids, dict):
            object.__setattr__(self, "yarn_ids", MappingProxyType(self.yarn_ids))
        if isinstance(self.headers, dict):
            object.__setattr__(self, "headers", MappingProxyType(self.headers))
        if self.gauge <= 0:
            raise ValueError(f"gauge must be positive, got {self.gauge}")


def assign_yarn_ids(names: Sequence[str]) -> dict[str, int]:
    """
    Map carrier names to yarn ids.

    Names that are strictly ascending positive integers are used directly;
    otherwise every carrier is numbered 1..N by position.
    """
    ids: dict[str, int] = {}
    previous = 0
    for name in names:
        if _CARRIER_NUMBER_RE.match(name) and int(name) > previous:
            ids[name] = int(name)
            previous = int(name)
        else:
            logger.info("Carrier names were not integers in order, so using position-based remapping.")
            return {name: i + 1 for i, name in enumerate(names)}
    return ids


def _parse_magic(lines: Sequence[str]) -> int:
    if not lines:
        raise FatalLoweringError(1, "No first line to check for magic number.")
    m = _MAGIC_RE.match(lines[0])
    if m is None:
        raise FatalLoweringError(1, "invalid knitout magic string")
    return int(m.group(1))


def read_header(
    lines: Sequence[str],
    config: LoweringConfig,
    sink: DiagnosticSink,
) -> tuple[KnitoutHeader, int]:
    """
    Read the magic line and header block.

    Returns the header and the 0-based index of the first line after it.
    """
    version = _parse_magic(lines)
    if version > config.known_version:
        sink.warn(
            1,
            f"File is version {version}, but this code only knows about versions "
            f"up to {config.known_version}.",
        )

    headers: dict[str, str] = {}
    carriers: list[str] | None = None
    gauge: float | None = None

    index = 1
    while index < len(lines):
        line = lines[index]
        if not line.startswith(";;"):
            break
        sep = line.find(": ")
        if sep == -1:
            sink.warn(
                index + 1,
                f"Comment-header-like line '{line}' does not contain string ': ' "
                "-- interpreting as regular comment.",
            )
            break
        name = line[2:sep]
        value = line[sep + 2 :]

        if name in headers:
            sink.warn(index + 1, f"header '{name}' specified more than once. Will use last value.")
        headers[name] = value

        if name == "Carriers":
            carriers = value.split()
            if len(set(carriers)) != len(carriers):
                raise FatalLoweringError(index + 1, f"Carriers header names a carrier twice: '{value}'.")
        elif name == "Gauge":
            if _GAUGE_RE.match(value) is None or float(value) <= 0:
                raise FatalLoweringError(
                    index + 1,
                    f"Gauge header's value ('{value}') should be a number greater than zero.",
                )
            gauge = float(value)
        elif config.is_ignored_header(name):
            pass
        else:
            sink.warn(index + 1, f"File contains unknown comment header '{name}'.")
        index += 1

    if carriers is None:
        raise FatalLoweringError(index + 1, "Carriers header not included but is required.")

    if gauge is None:
        gauge = config.default_gauge
        logger.info("Gauge header not specified. Assuming needles are 1 / %s inches apart.", gauge)
    else:
        logger.info("Gauge header indicates needles are 1 / %s inches apart.", gauge)

    yarn_ids = assign_yarn_ids(carriers)
    if all(name == str(yarn) for name, yarn in yarn_ids.items()):
        logger.info("Will use carrier names (%s) directly as yarn numbers.", " ".join(carriers))
    else:
        logger.info(
            "Carrier names map to yarn numbers as follows:%s",
            "".join(f"\n  '{name}' -> {yarn}" for name, yarn in yarn_ids.items()),
        )

    header = KnitoutHeader(
        version=version,
        carriers=tuple(carriers),
        yarn_ids=yarn_ids,
        gauge=gauge,
        headers=headers,
    )
    return header, index
