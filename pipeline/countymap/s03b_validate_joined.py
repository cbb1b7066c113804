"""
Validate the joined county feature collection using Pandera.

Purpose: Check the joined collection before it is simplified and published,
         reporting schema violations and data gaps
Input:
  - data/interim/counties_joined.parquet
Output:
  - Console validation report with PASS/FAIL/WARN status
  - Optional JSON report (read by the explorer app)
  - Exit code 0 (all pass) or 1 (errors found)

Decision log:
  - Uses Pandera with the pandas backend; geometry checked separately
  - Value column is configurable, so its check is added at runtime
  - Null values are warnings (they render as "no data"), null geometry is an error
Date: 2025-01-14
"""

import json
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
import geopandas as gpd
import pandas as pd
import pandera.pandas as pa
from pandera.errors import SchemaErrors
from pandera.pandas import Column, DataFrameModel, Field

from .utils.config import config, get_interim_path


# =============================================================================
# Schema Definitions
# =============================================================================


class JoinedCountySchema(DataFrameModel):
    """Schema for counties_joined.parquet (attribute columns only)."""

    GEOID: str = Field(nullable=False, unique=True, str_matches=r"^\d{5}$")
    STATEFP: Optional[str] = Field(nullable=True, str_length={"min_value": 2, "max_value": 2})

    class Config:
        strict = False  # Allow extra columns (joined attributes)
        coerce = True


def build_schema(value_column: str) -> pa.DataFrameSchema:
    """JoinedCountySchema plus a numeric check on the mapped value column."""
    return JoinedCountySchema.to_schema().add_columns(
        {value_column: Column(float, nullable=True, coerce=True)}
    )


# =============================================================================
# Validation Result Tracking
# =============================================================================


@dataclass
class ValidationResult:
    """Result of validating the joined collection."""

    table_name: str
    row_count: int
    passed: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_joined(
    gdf: gpd.GeoDataFrame, value_column: str, allow_missing_geometry: bool = False
) -> ValidationResult:
    """
    Validate a joined county collection without mutating it.

    Rows without geometry are errors unless allow_missing_geometry is set
    (outer joins keep attribute-only keys), in which case they are warnings.
    """
    errors = []
    warnings = []

    table = pd.DataFrame(gdf.drop(columns=gdf.geometry.name))
    try:
        build_schema(value_column).validate(table, lazy=True)
    except SchemaErrors as e:
        for _, case in e.failure_cases.iterrows():
            errors.append(f"{case['column']}: {case['check']} (value: {case['failure_case']})")

    null_geometry = int(gdf.geometry.isna().sum())
    if null_geometry:
        message = f"geometry: {null_geometry} row(s) without geometry"
        (warnings if allow_missing_geometry else errors).append(message)

    empty_geometry = int((gdf.geometry.notna() & gdf.geometry.is_empty).sum())
    if empty_geometry:
        warnings.append(f"geometry: {empty_geometry} empty geometries")

    if value_column in table.columns:
        null_values = int(table[value_column].isna().sum())
        if null_values:
            warnings.append(f"{value_column}: {null_values} null value(s) will render as no data")

    return ValidationResult(
        table_name="counties_joined",
        row_count=len(gdf),
        passed=not errors,
        errors=errors,
        warnings=warnings,
    )


def write_report(result: ValidationResult, output_path: Path) -> Path:
    """Write the JSON report read by the explorer app."""
    report = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "total_errors": len(result.errors),
            "total_warnings": len(result.warnings),
            "passed": result.passed,
        },
        "schema_validation": asdict(result),
    }
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(report, indent=2))
    return output_path


@click.command()
@click.option("--value-column", default=None, help="Mapped attribute column")
@click.option("--output", "-o", type=click.Path(), help="Write JSON report to file")
def main(value_column: str | None = None, output: str | None = None):
    """Validate the joined county collection."""
    value_column = value_column or config.VALUE_COLUMN
    path = get_interim_path() / "counties_joined.parquet"
    if not path.exists():
        print(f"ERROR: Joined collection not found: {path}")
        return 1

    print("=" * 60)
    print("Joined County Validation Report")
    print("=" * 60)

    result = validate_joined(gpd.read_parquet(path), value_column)

    status = "PASS" if result.passed else "FAIL"
    print(f"{result.table_name}.parquet ({result.row_count:,} rows): [{status}]")
    for err in result.errors:
        print(f"  ERROR: {err}")
    for warn in result.warnings:
        print(f"  WARN: {warn}")

    if output:
        write_report(result, Path(output))
        print(f"Report written to {output}")

    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(main(standalone_mode=False))
