import logging
import random
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from landing_edge.core.experiments_config import ExperimentsConfig, VariantConfig, normalize_path
from landing_edge.observability.metrics import edge_assignments_total
from landing_edge.utils.cookies import VARIANT_COOKIE_PREFIX

logger = logging.getLogger(__name__)

ROOT_EXPERIMENT_KEY = "home"


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class AssignmentDecision:
    experiment_key: str
    cookie_name: str
    variant: VariantConfig
    is_new: bool


def experiment_key(path: str) -> str:
    stripped = path.strip("/")
    if not stripped:
        return ROOT_EXPERIMENT_KEY
    return stripped.replace("/", "-")


def cookie_name_for(key: str) -> str:
    return f"{VARIANT_COOKIE_PREFIX}{key}"


class ExperimentService:
    def __init__(self, config: ExperimentsConfig, rng: Optional[RandomSource] = None):
        self.config = config
        self.rng = rng or random.Random()

    def resolve(self, path: str, cookies: Dict[str, str]) -> Optional[AssignmentDecision]:
        """
        Picks the variant for a request path.
        Returns None when no experiment covers the path or the experiment is inert.
        A sticky cookie naming a configured variant wins; anything else gets a fresh weighted draw.
        """
        normalized = normalize_path(path)
        variants = self.config.get(normalized)
        if not variants:
            return None

        total = sum(v.weight for v in variants)
        if total <= 0:
            return None

        key = experiment_key(normalized)
        cookie_name = cookie_name_for(key)

        sticky = cookies.get(cookie_name)
        if sticky:
            for variant in variants:
                if variant.name == sticky:
                    logger.debug("Sticky assignment %s=%s", key, variant.name)
                    edge_assignments_total.labels(experiment=key, variant=variant.name, source="sticky").inc()
                    return AssignmentDecision(key, cookie_name, variant, is_new=False)

        chosen = self._weighted_draw(variants, total)
        logger.debug("New assignment %s=%s", key, chosen.name)
        edge_assignments_total.labels(experiment=key, variant=chosen.name, source="new").inc()
        return AssignmentDecision(key, cookie_name, chosen, is_new=True)

    def _weighted_draw(self, variants, total: int) -> VariantConfig:
        draw = self.rng.random() * total
        cumulative = 0
        for variant in variants:
            cumulative += variant.weight
            if draw < cumulative:
                return variant

        # Fallback to last variant (handles floating point edge cases)
        return variants[-1]
