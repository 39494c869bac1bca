from __future__ import annotations


class MinerError(ValueError):
    """Base class for training/scoring failures."""


class EmptyInput(MinerError):
    pass


class InvalidModel(MinerError):
    """A reference vector does not belong to the schema the metric is built for."""


class SchemaMismatch(MinerError):
    """A compared vector is not structurally compatible with the learned schema."""
