"""Candidate document composition.

A candidate is the remote fragment preceded by an ``includes`` directive
that pulls in the customization header. The header is captured once,
from the ``customizations`` block of the document the host was first
launched with, and is never regenerated afterwards.

The block is located structurally with PyYAML's composer (node start and
end marks) and copied verbatim, key line and comments included, so a
candidate carries the same ``customizations`` section as the bootstrap
document:

    service:                 # bootstrap document
      flush: 5
    customizations:
      retries: 3
    pipeline: {}

becomes ``header.yaml``::

    customizations:
      retries: 3

A remote fragment that declares its own top-level ``includes`` has those
entries folded into the single directive, after the header.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import structlog
import yaml

from gitreload.core.exceptions import (
    ExtractionFailed,
    MissingCustomizationsSection,
    StagingIOFailure,
)
from gitreload.core.fileio import atomic_write_text


log = structlog.get_logger()

CUSTOMIZATIONS_KEY = "customizations"
INCLUDES_KEY = "includes"


def _is_null(node: yaml.Node) -> bool:
    return isinstance(node, yaml.ScalarNode) and node.tag.endswith(":null")


def _entry_span(text: str, key_node: yaml.Node, value_node: yaml.Node) -> tuple[int, int]:
    """Character range of a top-level ``key: value`` entry, whole lines.

    Runs from the start of the key's line to the end of the line holding
    the value's last content.
    """
    start = text.rfind("\n", 0, key_node.start_mark.index) + 1
    lines = text[start:value_node.end_mark.index].splitlines(keepends=True)

    # A block node ends on the next sibling key; trailing blank lines and
    # comments belong to the outer level
    while len(lines) > 1 and (not lines[-1].strip() or lines[-1].lstrip().startswith("#")):
        lines.pop()

    end = start + sum(len(line) for line in lines)
    if not text[start:end].endswith("\n"):
        newline = text.find("\n", end)
        end = len(text) if newline == -1 else newline + 1
    return start, end


def extract_customizations(text: str, document_path: str = "<bootstrap>") -> str:
    """Return the ``customizations`` entry of a YAML document verbatim.

    The result is itself a YAML document with a single top-level
    ``customizations`` key. A null value is written as an empty mapping.

    Raises:
        MissingCustomizationsSection: If the document is not a YAML
            mapping, has no such key, or the value is not a mapping.
    """
    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader)
    except yaml.YAMLError as e:
        raise MissingCustomizationsSection(document_path, reason=f"invalid YAML: {e}") from e

    if not isinstance(root, yaml.MappingNode):
        raise MissingCustomizationsSection(document_path, reason="document is not a mapping")

    for key_node, value_node in root.value:
        if not isinstance(key_node, yaml.ScalarNode) or key_node.value != CUSTOMIZATIONS_KEY:
            continue

        if _is_null(value_node):
            return f"{CUSTOMIZATIONS_KEY}: {{}}\n"
        if not isinstance(value_node, yaml.MappingNode):
            raise MissingCustomizationsSection(
                document_path, reason="'customizations' is not a mapping"
            )

        if root.flow_style:
            # {customizations: {...}, ...}: take just this pair
            return text[key_node.start_mark.index:value_node.end_mark.index] + "\n"

        start, end = _entry_span(text, key_node, value_node)
        block = text[start:end]
        return block if block.endswith("\n") else block + "\n"

    raise MissingCustomizationsSection(document_path)


def split_includes(fragment: str, source: str = "<remote fragment>") -> tuple[list[str], str]:
    """Remove top-level ``includes`` entries from a fragment.

    Returns:
        The include entries as written (quoting preserved) and the
        fragment without them. A fragment that is not valid YAML is
        returned unchanged; the host rejects it on reload.

    Raises:
        ExtractionFailed: If ``includes`` is not a path or a list of paths.
    """
    try:
        root = yaml.compose(fragment, Loader=yaml.SafeLoader)
    except yaml.YAMLError:
        return [], fragment
    if not isinstance(root, yaml.MappingNode):
        return [], fragment

    entries: list[str] = []
    spans: list[tuple[int, int]] = []
    for key_node, value_node in root.value:
        if not isinstance(key_node, yaml.ScalarNode) or key_node.value != INCLUDES_KEY:
            continue
        if root.flow_style:
            raise ExtractionFailed(
                source, message=f"'{INCLUDES_KEY}' in a flow-style document is not supported"
            )

        if _is_null(value_node):
            items: list[yaml.Node] = []
        elif isinstance(value_node, yaml.SequenceNode):
            items = list(value_node.value)
        else:
            items = [value_node]

        for item in items:
            literal = fragment[item.start_mark.index:item.end_mark.index]
            if (
                not isinstance(item, yaml.ScalarNode)
                or not item.tag.endswith(":str")
                or "\n" in literal
            ):
                raise ExtractionFailed(
                    source,
                    message=f"'{INCLUDES_KEY}' in {source} must be a path or a list of paths",
                )
            entries.append(literal)
        spans.append(_entry_span(fragment, key_node, value_node))

    for start, end in reversed(spans):
        fragment = fragment[:start] + fragment[end:]
    return entries, fragment


class ConfigComposer:
    """Builds candidate documents around a persisted header.

    Attributes:
        header_path: Where the customization header lives.
    """

    def __init__(self, header_path: Path) -> None:
        self._header_path = Path(header_path).absolute()

    @property
    def header_path(self) -> Path:
        return self._header_path

    def has_header(self) -> bool:
        return self._header_path.is_file()

    def capture_header_if_absent(self, bootstrap_document_path: Path) -> bool:
        """Capture the header from the bootstrap document, once.

        Returns:
            True if a header was written, False if one already existed.

        Raises:
            MissingCustomizationsSection: No header exists and the
                bootstrap document has no usable ``customizations`` block.
            StagingIOFailure: The header could not be persisted.
        """
        if self.has_header():
            log.debug("customization_header_present", path=str(self._header_path))
            return False

        bootstrap = Path(bootstrap_document_path)
        try:
            text = bootstrap.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise MissingCustomizationsSection(str(bootstrap), reason="document not found") from e
        except OSError as e:
            raise StagingIOFailure(str(bootstrap), "read", str(e)) from e

        header = extract_customizations(text, str(bootstrap))

        try:
            self._header_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StagingIOFailure(str(self._header_path.parent), "mkdir", str(e)) from e
        atomic_write_text(self._header_path, header)

        log.info(
            "customization_header_captured",
            source=str(bootstrap),
            path=str(self._header_path),
            size=len(header),
        )
        return True

    def inclusion_directive(self, extra: Sequence[str] = ()) -> str:
        """Directive placed at the top of every candidate.

        The header always comes first; ``extra`` entries follow as given.
        """
        lines = [f"{INCLUDES_KEY}:", f"  - {self._header_path}"]
        lines.extend(f"  - {entry}" for entry in extra)
        return "\n".join(lines) + "\n"

    def compose(self, remote_fragment: str, source: str = "<remote fragment>") -> str:
        """Prepend the header inclusion to a remote fragment.

        The candidate holds exactly one top-level ``includes``, so the
        header cannot be shadowed by the fragment.

        Args:
            remote_fragment: Contents of the watched file.
            source: Name used in error messages.

        Raises:
            ExtractionFailed: The fragment's ``includes`` is malformed.
        """
        extra, fragment = split_includes(remote_fragment, source)
        fragment = fragment.lstrip("\n")
        if fragment and not fragment.endswith("\n"):
            fragment += "\n"
        return f"{self.inclusion_directive(extra)}\n{fragment}"
