# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Naming of tuned variants.

:func:`variant_name` is the only place a variant string is built. The sweep
uses it for the tags it bakes and the reporter for what it displays, so the
two always agree.
"""

import re
from dataclasses import dataclass

from gpusweep.common.constants import LATEST_TAG_SUFFIX

__all__ = [
    "VariantNameParts",
    "base_alias",
    "is_variant_tag",
    "strip_latest",
    "variant_name",
]

_SEPARATORS = re.compile(r"[/:]+")
_PARAM_SUFFIX = re.compile(r"-ng\d+(:|$)")


def base_alias(base_model: str) -> str:
    """Compact a model reference into a tag-safe alias.

    Examples:
        >>> base_alias("library/gemma3:27b-it-fp16")
        'library-gemma3-27b-i-f16'
    """
    alias = _SEPARATORS.sub("-", strip_latest(base_model))
    alias = alias.replace("-it-", "-i-")
    if alias.endswith("-it"):
        alias = alias[: -len("-it")] + "-i"
    return alias.replace("-fp16", "-f16").replace("-bf16", "-b16")


def strip_latest(tag: str) -> str:
    return tag[: -len(LATEST_TAG_SUFFIX)] if tag.endswith(LATEST_TAG_SUFFIX) else tag


@dataclass(frozen=True, slots=True)
class VariantNameParts:
    """Everything a variant name depends on."""

    base_model: str
    stack: str
    gpu_label: str
    parameter_value: int | None = None
    suffix: str = ""
    prefix: str = ""


def variant_name(parts: VariantNameParts) -> str:
    """Build the variant name.

    Format: ``{prefix}{stack}-{gpu_label}[--{suffix}]-{alias}[-ng{value}]``.
    The ``-ng{value}`` part is omitted when there is no value. Candidates and
    published variants always carry it, so a name can be rebuilt from a row's
    base model, GPU label and value.
    """
    name = f"{parts.prefix}{parts.stack}-{parts.gpu_label}"
    suffix = parts.suffix.lstrip("-")
    if suffix:
        name += f"--{suffix}"
    name += f"-{base_alias(parts.base_model)}"
    if parts.parameter_value is not None:
        name += f"-ng{parts.parameter_value}"
    return name


def is_variant_tag(tag: str, prefix: str = "") -> bool:
    """Whether a served tag looks like one of our baked variants."""
    if prefix and tag.startswith(prefix):
        return True
    return bool(_PARAM_SUFFIX.search(tag))
