"""
Lowering configuration: loads converter constants from YAML at startup and
validates them.

The default configuration is a module-level singleton; call get_config() to
obtain it. Use LoweringConfig.load() with another path to try alternate
constants (e.g. in tests). Nothing writes to a config after it is loaded.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

_DATA_DIR = Path(__file__).parent / "data"
_DEFAULT_PATH = _DATA_DIR / "knitout.yaml"


@dataclass(frozen=True)
class LoweringConfig:
    """
    Constants that steer knitout -> formal knitout conversion.

    Attributes:
        known_version: Highest knitout version understood; newer versions warn.
        default_gauge: Gauge assumed when the Gauge header is absent.
        stitch_size: Loop length emitted on knit/tuck/split.
        needle_width: Needle width used when reckoning yarn lengths.
        echo_column: Column where the echoed source line starts.
        ignored_headers: Header names accepted without effect.
        ignored_header_prefixes: Header name prefixes accepted without effect.
        no_op_operations: Operations accepted and dropped.
        presser_modes: Values accepted by x-presser-mode.
    """

    known_version: int = 2
    default_gauge: float = 15.0
    stitch_size: float = 30.0
    needle_width: float = 0.0
    echo_column: int = 30
    ignored_headers: frozenset[str] = frozenset({"Machine", "Width", "Position"})
    ignored_header_prefixes: tuple[str, ...] = ("Yarn-",)
    no_op_operations: frozenset[str] = frozenset({"releasehook", "pause"})
    presser_modes: frozenset[str] = frozenset({"on", "off", "auto"})

    def is_ignored_header(self, name: str) -> bool:
        return name in self.ignored_headers or any(
            name.startswith(prefix) for prefix in self.ignored_header_prefixes
        )

    # ── Loading ────────────────────────────────────────────────────────────────

    @classmethod
    def load(cls, path: Path = _DEFAULT_PATH) -> LoweringConfig:
        """
        Load and validate a configuration file.

        Raises FileNotFoundError if ``path`` does not exist, and ValueError
        listing every problem if the file is malformed or holds bad values.
        """
        data = _load_yaml(path)
        errors: list[str] = []

        def number(key: str, *, positive: bool = False, minimum: float | None = None) -> Any:
            value = data.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{key} must be a number, got {value!r}")
                return None
            if positive and value <= 0:
                errors.append(f"{key} must be positive, got {value}")
            if minimum is not None and value < minimum:
                errors.append(f"{key} must be >= {minimum}, got {value}")
            return value

        def names(section: str, key: str) -> list[str]:
            value = (data.get(section) or {}).get(key, [])
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                errors.append(f"{section}.{key} must be a list of strings, got {value!r}")
                return []
            return value

        known_version = number("known_version", positive=True)
        if known_version is not None and not isinstance(known_version, int):
            errors.append(f"known_version must be an integer, got {known_version}")
        default_gauge = number("default_gauge", positive=True)
        stitch_size = number("stitch_size", positive=True)
        needle_width = number("needle_width", minimum=0)
        echo_column = number("echo_column", minimum=0)

        ignored = names("headers", "ignored")
        prefixes = names("headers", "ignored_prefixes")
        no_op = names("operations", "no_op")

        presser_modes = data.get("presser_modes", [])
        if not isinstance(presser_modes, list) or not presser_modes:
            errors.append(f"presser_modes must be a non-empty list, got {presser_modes!r}")
            presser_modes = []

        if errors:
            raise ValueError(
                f"Lowering config {path} is invalid:\n"
                + "\n".join(f"  • {e}" for e in errors)
            )

        return cls(
            known_version=known_version,
            default_gauge=float(default_gauge),
            stitch_size=float(stitch_size),
            needle_width=float(needle_width),
            echo_column=int(echo_column),
            ignored_headers=frozenset(ignored),
            ignored_header_prefixes=tuple(prefixes),
            no_op_operations=frozenset(no_op),
            presser_modes=frozenset(str(m) for m in presser_modes),
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Lowering config file not found: {path}") from None
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to parse lowering config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Lowering config file {path} must contain a mapping")
    return cast(dict[str, Any], data)


# ── Module-level singleton ─────────────────────────────────────────────────────

_config: LoweringConfig = LoweringConfig.load()


def get_config() -> LoweringConfig:
    """Return the module-level default configuration."""
    return _config
