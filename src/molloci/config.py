from __future__ import annotations

import logging
from dataclasses import dataclass, field

from openmm import unit

from .assembly import DEFAULT_ASSEMBLY_ID
from .molecule_data import Model, SelectionError

logger = logging.getLogger(__name__)

ALIGNMENT_URL = "https://alignment.rcsb.org/api/v1-beta/"


@dataclass(frozen=True, kw_only=True)
class ViewerConfig:
    default_assembly_id: str = DEFAULT_ASSEMBLY_ID
    alignment_url: str = ALIGNMENT_URL
    poll_interval: float = 0.025  # s
    poll_timeout: float = 10.0  # s
    request_timeout: float = 30.0  # s, per HTTP request
    min_motif_size: int = 2
    max_motif_size: int = 10
    max_exchanges: int = 4
    max_motif_extent: unit.Quantity = field(
        default_factory=lambda: unit.Quantity(15.0, unit.angstrom)
    )

    def __post_init__(self):
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.poll_timeout < 0:
            raise ValueError(f"poll_timeout must not be negative, got {self.poll_timeout}")
        if not 0 < self.min_motif_size <= self.max_motif_size:
            raise ValueError(
                f"Invalid motif size limits [{self.min_motif_size}, {self.max_motif_size}]"
            )

    def max_motif_extent_angstrom(self) -> float:
        return float(self.max_motif_extent.value_in_unit(unit.angstrom))


class ViewerContext:
    """
    State of one structure-viewing session.

    Created per session and passed explicitly to orchestration calls. Holds
    the configuration and the models loaded in this session, keyed by model id.
    """

    def __init__(self, config: ViewerConfig | None = None):
        self.config = config if config is not None else ViewerConfig()
        self._models: dict[str, Model] = {}

    def __repr__(self) -> str:
        return f"<ViewerContext: {len(self._models)} models>"

    def register(self, model: Model) -> Model:
        if model.id in self._models and self._models[model.id] is not model:
            raise ValueError(f"Another model is already registered as '{model.id}'")
        self._models[model.id] = model
        logger.debug("Registered %s as '%s'", model, model.id)
        return model

    def models(self) -> list[Model]:
        return list(self._models.values())

    def model_for(self, model_id: str | None = None, model_num: int | None = None) -> Model:
        """
        Look up a registered model by id, else by model number.

        With neither given, a session holding exactly one model returns it.
        """
        if model_id is not None:
            try:
                return self._models[model_id]
            except KeyError:
                raise SelectionError(f"No model registered as '{model_id}'") from None
        candidates = list(self._models.values())
        if model_num is not None:
            candidates = [m for m in candidates if m.model_num == model_num]
        if len(candidates) != 1:
            raise SelectionError(
                f"Cannot pick a model (id={model_id}, num={model_num}) among {len(candidates)} candidates"
            )
        return candidates[0]
