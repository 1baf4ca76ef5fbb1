"""Merge ranked chunks into the context block handed to the generator."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

from ragengine.models import Chunk

_FIRST_SENTENCE = re.compile(r"^(.+?[.!?。．！？])(?:\s|$)")


@dataclass(frozen=True)
class ContextConfig:
    """Layout of the assembled context."""

    group_by_topic: bool = False
    chunk_separator: str = "\n\n"
    group_separator: str = "\n\n---\n\n"


def topic_key(chunk: Chunk) -> str:
    """Heading used to group a chunk: its first line, else its first sentence."""

    text = chunk.text.strip()
    first_line, newline, _ = text.partition("\n")
    if newline:
        return first_line.strip()
    match = _FIRST_SENTENCE.match(text)
    return match.group(1).strip() if match else text


class ContextAssembler:
    """Concatenates chunk texts verbatim; the caller bounds how many are passed."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self._config = config or ContextConfig()

    def assemble(self, chunks: Sequence[Chunk]) -> str:
        if not chunks:
            return ""
        if not self._config.group_by_topic:
            return self._config.chunk_separator.join(chunk.text for chunk in chunks)
        groups: Dict[str, List[str]] = {}
        for chunk in chunks:
            groups.setdefault(topic_key(chunk), []).append(chunk.text)
        rendered = [
            f"{heading}\n{self._config.chunk_separator.join(texts)}" for heading, texts in groups.items()
        ]
        return self._config.group_separator.join(rendered)
