# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from gpusweep.variants.lifecycle import Variant, VariantLifecycleManager
from gpusweep.variants.naming import (
    VariantNameParts,
    base_alias,
    is_variant_tag,
    strip_latest,
    variant_name,
)

__all__ = [
    "Variant",
    "VariantLifecycleManager",
    "VariantNameParts",
    "base_alias",
    "is_variant_tag",
    "strip_latest",
    "variant_name",
]
