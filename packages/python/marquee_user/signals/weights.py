from datetime import datetime

from marquee_core.types import LearnParams
from marquee_user.interactions.schemas import InteractionType, UserInteraction

from .decay import tdecay

# Signed strength of each interaction type. Negative values push the
# profile away from the item.
BASE_WEIGHTS: dict[InteractionType, float] = {
    InteractionType.LIKE: 1.0,
    InteractionType.WATCH: 0.8,
    InteractionType.VIEW: 0.3,
    InteractionType.SEARCH: 0.2,
    InteractionType.SKIP: -0.5,
    InteractionType.DISLIKE: -1.0,
}


def interaction_weight(interaction: UserInteraction, params: LearnParams = LearnParams()) -> float:
    """
    Weight used by the incremental learner.

    A watch is scaled by how much of a full watch it was when the duration
    is known (0 seconds -> 0); with no duration it counts as a full watch.
    """
    w = BASE_WEIGHTS.get(interaction.type, 0.0)
    if interaction.type == InteractionType.WATCH and interaction.duration is not None:
        w *= min(interaction.duration / params.watch_full_seconds, 1.0)
    return w


def engagement_weight(interaction: UserInteraction) -> float:
    """
    Non-negative engagement used by full rebuilds.
    Dislikes contribute nothing: a rebuild is a weighted average of liked content.
    """
    if interaction.type == InteractionType.DISLIKE:
        return 0.0
    if interaction.type == InteractionType.WATCH and interaction.completion is not None:
        return interaction.completion
    if interaction.rating is not None:
        return interaction.rating / 10.0
    if interaction.type == InteractionType.LIKE:
        return 1.0
    if interaction.type == InteractionType.SKIP:
        return 0.1
    return 0.5


def rebuild_weight(interaction: UserInteraction, now: datetime, params: LearnParams = LearnParams()) -> float:
    return tdecay(interaction.timestamp, now, params.rebuild_lambda_month) * engagement_weight(interaction)
