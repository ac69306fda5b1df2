"""
Error types raised by the inpatient claims pipeline.

Non-fatal data-quality findings (all-null columns, disagreeing bill-type
sources, out-of-window rows) are logged, not raised.
"""


class SchemaError(ValueError):
    """Input table is missing a required column or has colliding names."""


class DerivationError(ValueError):
    """A derived stay metric came out negative while running in strict mode."""


class StageError(RuntimeError):
    """A pipeline stage failed; carries the stage name and the rows it was processing."""

    def __init__(self, stage: str, rows: int, message: str):
        self.stage = stage
        self.rows = rows
        super().__init__(f"[{stage}] failed on {rows:,} rows: {message}")
