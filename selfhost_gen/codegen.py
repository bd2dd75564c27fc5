"""TypeScript project config (tsconfig.json) generation for Convex functions.

The config is split into two partitions: options users may freely change and
options Convex needs to bundle and typecheck functions correctly. They are
kept as separate structures and merged only when rendering, so a required
option can never be overridden.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

GENERATED_DIR = "_generated"
INCLUDE_PATTERNS = ("./**/*",)
EXCLUDE_PATTERNS = (f"./{GENERATED_DIR}",)

EDITABLE_COMPILER_OPTIONS: Mapping[str, Any] = MappingProxyType(
    {
        "allowJs": True,
        "strict": True,
        "moduleResolution": "Bundler",
    }
)

REQUIRED_COMPILER_OPTIONS: Mapping[str, Any] = MappingProxyType(
    {
        "target": "ESNext",
        "lib": ("ES2021", "dom"),
        "forceConsistentCasingInFileNames": True,
        "allowSyntheticDefaultImports": True,
        "module": "ESNext",
        "isolatedModules": True,
        "skipLibCheck": True,
        "noEmit": True,
    }
)

_HEADER = (
    "  /* This TypeScript project config describes the environment that",
    "   * Convex functions run in and is used to typecheck them.",
    "   * You can modify it, but some settings required to use Convex.",
    "   */",
)
_EDITABLE_COMMENT = "    /* These settings are not required by Convex and can be modified. */"
_REQUIRED_COMMENT = "    /* These compiler options are required by Convex */"
_RESERVED_KEYS = ("compilerOptions", "include", "exclude")


def _option_lines(options: Mapping[str, Any]) -> List[str]:
    return [f"    {json.dumps(key)}: {json.dumps(value)}," for key, value in options.items()]


def render_environment_descriptor(
    editable_options: Optional[Mapping[str, Any]] = None,
    extra_entries: Optional[Mapping[str, Any]] = None,
) -> str:
    """Render the config text; keys of ``REQUIRED_COMPILER_OPTIONS`` are ignored in ``editable_options``."""
    editable = dict(EDITABLE_COMPILER_OPTIONS if editable_options is None else editable_options)
    for key in REQUIRED_COMPILER_OPTIONS:
        editable.pop(key, None)

    top_level = [
        f"  \"include\": {json.dumps(list(INCLUDE_PATTERNS))}",
        f"  \"exclude\": {json.dumps(list(EXCLUDE_PATTERNS))}",
    ]
    for key, value in (extra_entries or {}).items():
        if key in _RESERVED_KEYS:
            continue
        top_level.append(f"  {json.dumps(key)}: {json.dumps(value)}")

    lines = [
        "{",
        *_HEADER,
        "  \"compilerOptions\": {",
        _EDITABLE_COMMENT,
        *_option_lines(editable),
        "",
        _REQUIRED_COMMENT,
        *_option_lines(REQUIRED_COMPILER_OPTIONS),
        "  },",
        ",\n".join(top_level),
        "}",
    ]
    return "\n".join(lines)


def generate_environment_descriptor() -> str:
    """Return the full tsconfig.json template. Pure and input-free."""
    return render_environment_descriptor()


def _skip_blank(text: str, index: int) -> int:
    """Return the index of the next character that is neither whitespace nor inside a comment."""
    length = len(text)
    while index < length:
        if text[index].isspace():
            index += 1
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline == -1 else newline
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            index = length if end == -1 else end + 2
        else:
            break
    return index


def _strip_jsonc(text: str) -> str:
    """Drop comments and trailing commas so the text parses as strict JSON."""
    out: List[str] = []
    index = 0
    length = len(text)
    in_string = False
    while index < length:
        ch = text[index]
        if in_string:
            out.append(ch)
            if ch == "\\" and index + 1 < length:
                out.append(text[index + 1])
                index += 2
                continue
            if ch == '"':
                in_string = False
            index += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            index += 1
            continue
        if text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline == -1 else newline
            continue
        if text.startswith("/*", index):
            end = text.find("*/", index + 2)
            if end == -1:
                raise ValueError("Unterminated block comment")
            index = end + 2
            continue
        if ch == ",":
            lookahead = _skip_blank(text, index + 1)
            if lookahead < length and text[lookahead] in "}]":
                index += 1
                continue
        out.append(ch)
        index += 1
    return "".join(out)


def parse_environment_descriptor(text: str) -> Dict[str, Any]:
    data = json.loads(_strip_jsonc(text))
    if not isinstance(data, dict):
        raise ValueError("tsconfig content must be a JSON object")
    return data


def regenerate_environment_descriptor(existing_text: str) -> str:
    """Re-render an existing config, keeping user edits to editable options.

    Required compiler options, ``include`` and ``exclude`` are always reset.
    User-added compiler options and extra top-level keys are kept.
    """
    try:
        existing = parse_environment_descriptor(existing_text)
    except ValueError as exc:
        logger.warning("Existing tsconfig could not be parsed (%s); writing a fresh template", exc)
        return generate_environment_descriptor()

    options = existing.get("compilerOptions")
    if isinstance(options, dict):
        # Editable options the user removed stay removed.
        editable: Dict[str, Any] = {}
    else:
        options = {}
        editable = dict(EDITABLE_COMPILER_OPTIONS)

    for key, value in options.items():
        if key in REQUIRED_COMPILER_OPTIONS:
            if json.dumps(value) != json.dumps(REQUIRED_COMPILER_OPTIONS[key]):
                logger.info("Resetting required compiler option %s", key)
            continue
        editable[key] = value

    for key in ("include", "exclude"):
        if key in existing and existing[key] != list(INCLUDE_PATTERNS if key == "include" else EXCLUDE_PATTERNS):
            logger.info("Resetting required %s patterns", key)

    extras = {key: value for key, value in existing.items() if key not in _RESERVED_KEYS}
    return render_environment_descriptor(editable, extras)


def _relative_parts(path: str) -> Optional[List[str]]:
    posix = PurePosixPath(str(path).replace("\\", "/"))
    if posix.is_absolute():
        return None
    parts = [part for part in posix.parts if part != "."]
    if not parts or ".." in parts:
        return None
    return parts


def is_excluded(path: str) -> bool:
    """True only for paths inside the top-level generated-code directory."""
    parts = _relative_parts(path)
    return bool(parts) and parts[0] == GENERATED_DIR


def is_included(path: str) -> bool:
    """True for any file under the project root that is not excluded."""
    parts = _relative_parts(path)
    return parts is not None and not is_excluded(path)


def write_environment_descriptor(path: Path, preserve_edits: bool = False) -> str:
    existing = path.read_text(encoding="utf-8") if path.exists() else None
    if existing is not None and preserve_edits:
        text = regenerate_environment_descriptor(existing)
    else:
        text = generate_environment_descriptor()
        if existing is not None and existing != text:
            logger.warning("Overwriting %s; local edits are discarded (use --preserve-edits to keep them)", path)
    path.write_text(text, encoding="utf-8")
    logger.info("TypeScript config written to %s", path)
    return text
