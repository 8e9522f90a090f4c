"""Transaction options and runtime settings.

``TransactionConfig`` is what a single ``TransactionController.run`` call is
parameterised with; ``Settings`` reads the connection string and the
defaults of the command line program from the environment (``MONGO_*``) or
a ``.env`` file.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern


class ReadConsistency(str, Enum):
    DEFAULT = "default"
    LOCAL = "local"
    MAJORITY = "majority"
    SNAPSHOT = "snapshot"

    def read_concern(self) -> ReadConcern:
        """``DEFAULT`` inherits the read concern of the session or client."""
        if self is ReadConsistency.DEFAULT:
            return ReadConcern()
        return ReadConcern(self.value)


class WriteDurability(str, Enum):
    DEFAULT = "default"
    ACKNOWLEDGED = "acknowledged"
    MAJORITY = "majority"

    def write_concern(self) -> WriteConcern:
        if self is WriteDurability.MAJORITY:
            return WriteConcern(w="majority")
        if self is WriteDurability.ACKNOWLEDGED:
            return WriteConcern(w=1)
        return WriteConcern()


class TransactionConfig(BaseModel):
    """Options applied to one unit-of-work.

    ``commit_retry_limit`` counts re-attempts, so the default of 1 means
    commit is tried at most twice. ``timeout`` bounds the whole unit-of-work
    and is checked between operations and before every commit attempt.
    """

    model_config = ConfigDict(frozen=True)

    causally_consistent: bool = False
    read_consistency: ReadConsistency = ReadConsistency.DEFAULT
    write_durability: WriteDurability = WriteDurability.DEFAULT
    commit_retry_limit: int = Field(default=1, ge=0)
    timeout: Optional[float] = Field(default=None, gt=0)
    max_commit_time_ms: Optional[int] = Field(default=None, gt=0)

    @classmethod
    def basic(cls, **overrides) -> "TransactionConfig":
        """Driver defaults for everything."""
        return cls(**overrides)

    @classmethod
    def causal(cls, **overrides) -> "TransactionConfig":
        """Causally consistent session, snapshot reads, majority writes."""
        options = {
            "causally_consistent": True,
            "read_consistency": ReadConsistency.SNAPSHOT,
            "write_durability": WriteDurability.MAJORITY,
        }
        options.update(overrides)
        return cls(**options)

    def read_concern(self) -> ReadConcern:
        return self.read_consistency.read_concern()

    def write_concern(self) -> WriteConcern:
        return self.write_durability.write_concern()


PRESETS = {
    "basic": TransactionConfig.basic,
    "causal": TransactionConfig.causal,
}


class Settings(BaseSettings):
    """Runtime configuration for the command line program."""

    model_config = SettingsConfigDict(
        env_prefix="MONGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    uri: str = Field(default="mongodb://localhost:27017/?replicaSet=rs0")
    database: str = Field(default="transactiondb")
    collection: str = Field(default="sample1")
    log_level: str = Field(default="INFO")
    commit_retry_limit: int = Field(default=1, ge=0)
    timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        if not isinstance(value, str):
            return "INFO"
        return value.upper()

    def transaction_config(self, variant: str = "basic") -> TransactionConfig:
        try:
            preset = PRESETS[variant]
        except KeyError:
            raise ValueError(f"Unknown transaction variant: {variant!r}") from None
        return preset(commit_retry_limit=self.commit_retry_limit, timeout=self.timeout)
