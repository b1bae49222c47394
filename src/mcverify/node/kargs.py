# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mcverify/node/kargs.py
from __future__ import annotations

import shlex
from typing import Iterable, List


def _group_words(words: Iterable[str]) -> List[str]:
    """
    Group whitespace-separated words into kernel arguments.

    A word with "=" starts a new argument. A bare word belongs to the previous
    argument when that one has a value ("bar=hello world"), otherwise it is a
    flag of its own ("quiet").
    """
    args: List[str] = []
    for word in words:
        if not word:
            continue
        if "=" not in word and args and "=" in args[-1]:
            args[-1] = f"{args[-1]} {word}"
        else:
            args.append(word)
    return args


def parse_kernel_arguments(values: Iterable[str]) -> List[str]:
    """
    Split MachineConfig kernelArguments entries into individual arguments.

    Each entry is parsed on its own, so a value never runs into the next
    entry:

        ["foo=bar", "foo=baz", " baz=test bar=hello world"]
        -> ["foo=bar", "foo=baz", "baz=test", "bar=hello world"]
    """
    args: List[str] = []
    for value in values:
        args.extend(_group_words(value.strip().split()))
    return args


def _cmdline_words(text: str) -> List[str]:
    try:
        words = shlex.split(text)
    except ValueError:
        # unbalanced quote; take the line as plain words
        words = text.split()
    return [w for word in words for w in word.split()]


def cmdline_has(text: str, argument: str) -> bool:
    """
    True when `argument` appears on the command line as whole words, so
    "foo=bar" does not match "foo=barbaz" and "bar=hello world" needs both
    words next to each other.
    """
    want = argument.split()
    if not want:
        return False
    words = _cmdline_words(text)
    n = len(want)
    return any(words[i:i + n] == want for i in range(len(words) - n + 1))
