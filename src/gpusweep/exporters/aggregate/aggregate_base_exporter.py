# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Base class for file exporters of aggregate results."""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

from gpusweep.exporters.aggregate.aggregate_exporter_config import AggregateExporterConfig
from gpusweep.metrics.records import AggregateRecord
from gpusweep.variants.naming import VariantNameParts, variant_name

__all__ = [
    "AggregateBaseExporter",
    "display_variant",
]


def display_variant(record: AggregateRecord, prefix: str = "", suffix: str = "") -> str:
    """Variant name shown for an aggregate row.

    Rows without a tuned value show the base model itself.
    """
    if record.num_gpu is None:
        return record.model
    return variant_name(
        VariantNameParts(
            base_model=record.model,
            stack=record.stack,
            gpu_label=record.gpu_label,
            parameter_value=record.num_gpu,
            suffix=suffix,
            prefix=prefix,
        )
    )


class AggregateBaseExporter(ABC):
    """Writes one file generated from an AggregateExporterConfig."""

    def __init__(self, config: AggregateExporterConfig):
        self._config = config

    @abstractmethod
    def get_file_name(self) -> str:
        """Return the output file name."""

    @abstractmethod
    def _generate_content(self) -> str:
        """Return the full file content."""

    def get_path(self) -> Path:
        return self._config.output_dir / self.get_file_name()

    async def export(self) -> Path:
        """Write the file and return its path."""
        path = self.get_path()
        content = self._generate_content()
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_text, content)
        return path

    def _format_number(self, value: float | None, decimals: int = 2) -> str:
        if value is None:
            return ""
        return f"{value:.{decimals}f}"
