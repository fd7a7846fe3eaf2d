"""Property recommendations from search intent and browsing behaviour.

`score_recommendation` rates one property for a visitor; `recommend` ranks
the catalogue, skipping the property on screen and the last few viewed,
and makes the first slots cover different property types and zones.
Everything here is a pure function; the behaviour profile is a frozen
value updated through `track_behavior`.
"""

import math
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ownitright.models.record import Property
from ownitright.models.status import Confidence, RecommendationIntent, parse_enum
from ownitright.services.filter_engine import as_number, get_field, plain_value
from ownitright.utils.errors import ValidationError
from ownitright.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)

PropertyLike = Union[Property, Mapping[str, Any]]

INVESTMENT_ZONES = ("east", "north")


def _tagged(*wanted: str) -> Callable[[dict], bool]:
    return lambda facts: any(tag in facts["tags"] for tag in wanted)


# (predicate over listing facts, points, reason), applied in order
INTENT_RULES: dict[RecommendationIntent, tuple[tuple[Callable[[dict], bool], int, str], ...]] = {
    RecommendationIntent.INVESTMENT: (
        (_tagged("high-roi"), 20, "High ROI potential"),
        (_tagged("rental-income"), 15, "Strong rental income"),
        (lambda facts: facts["zone"] in INVESTMENT_ZONES, 10, "Investment-friendly location"),
        (lambda facts: facts["status"] == "pre-launch", 12, "Pre-launch pricing advantage"),
        (_tagged("metro-connectivity"), 8, "Metro connectivity boosts value"),
    ),
    RecommendationIntent.END_USE: (
        (_tagged("family-friendly"), 20, "Perfect for families"),
        (_tagged("school-nearby"), 15, "Good schools nearby"),
        (_tagged("park", "children-play-area"), 12, "Great for children"),
        (lambda facts: facts["family_layout"], 10, "Spacious family layout"),
    ),
}

TYPE_PREFERENCE_POINTS = 5
LOCATION_PREFERENCE_POINTS = 3
BUDGET_FIT_POINTS = 15
FEATURE_MATCH_POINTS = 2
SIMILAR_TO_VIEWED_POINTS = 8
TRENDING_POINTS = 5
PREMIUM_DEVELOPER_POINTS = 7

MAX_REASONS = 3
RECENTLY_VIEWED_WINDOW = 3
DIVERSE_SLOTS = 3
DEFAULT_LIMIT = 6

# (minimum reasons, minimum score) -> confidence, checked in order
CONFIDENCE_RULES: tuple[tuple[int, int, Confidence], ...] = (
    (4, 80, Confidence.HIGH),
    (2, 60, Confidence.MEDIUM),
)


class UserBehavior(BaseModel):
    """What a visitor has looked at, saved and searched for."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    viewed_properties: tuple[str, ...] = ()
    saved_properties: tuple[str, ...] = ()
    search_history: tuple[str, ...] = ()
    price_range_history: tuple[tuple[float, float], ...] = ()
    location_preferences: tuple[str, ...] = ()
    property_type_preferences: tuple[str, ...] = ()
    time_spent_on_properties: dict[str, float] = Field(default_factory=dict)
    clicked_features: tuple[str, ...] = ()

    @property
    def data_points(self) -> int:
        """Number of recorded signals across every list and map."""
        return sum(len(getattr(self, name)) for name in type(self).model_fields)


def _append_unique(values: tuple[str, ...], value: str) -> tuple[str, ...]:
    return values if value in values else values + (value,)


def track_behavior(behavior: Optional[UserBehavior], action: str, **data: Any) -> UserBehavior:
    """
    Return the profile with one interaction recorded.

    Actions: view_property(property_id), save_property(property_id),
    search(search_term, price_range=None), time_spent(property_id, seconds),
    click_feature(feature).
    """
    behavior = behavior or UserBehavior()
    if action == "view_property":
        update = {"viewed_properties": _append_unique(behavior.viewed_properties, str(data["property_id"]))}
    elif action == "save_property":
        update = {"saved_properties": _append_unique(behavior.saved_properties, str(data["property_id"]))}
    elif action == "search":
        update = {"search_history": behavior.search_history + (data["search_term"],)}
        if data.get("price_range"):
            low, high = data["price_range"]
            update["price_range_history"] = behavior.price_range_history + ((low, high),)
    elif action == "time_spent":
        spent = dict(behavior.time_spent_on_properties)
        spent[str(data["property_id"])] = data["seconds"]
        update = {"time_spent_on_properties": spent}
    elif action == "click_feature":
        update = {"clicked_features": _append_unique(behavior.clicked_features, data["feature"])}
    else:
        raise ValidationError(f"Unknown behaviour action {action!r}", field="action")
    return behavior.model_copy(update=update)


class Recommendation(BaseModel):
    """One scored property with the reasons shown on its card."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    property_id: str
    score: int
    reasons: tuple[str, ...] = ()
    confidence: Confidence = Confidence.LOW
    property: Any = Field(default=None, exclude=True)


class RecommendationAnalytics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_recommendations: int = 0
    average_score: int = 0
    confidence_distribution: dict[str, int] = Field(default_factory=dict)
    intent_optimized: bool = False
    behavior_data_points: int = 0


def _intent(intent: Union[str, RecommendationIntent, None]) -> RecommendationIntent:
    return parse_enum(RecommendationIntent, intent or "", field="intent")


def _tags(prop: PropertyLike) -> list[str]:
    return [str(tag) for tag in (get_field(prop, "tags") or [])]


def _configurations(prop: PropertyLike) -> list[Mapping[str, Any]]:
    return [c for c in (get_field(prop, "configurations") or []) if isinstance(c, Mapping)]


def _has_family_layout(prop: PropertyLike) -> bool:
    labels = [get_field(prop, "bedrooms") or ""]
    labels += [c.get("configuration") or "" for c in _configurations(prop)]
    return any("3 bhk" in str(label).lower().replace("-", " ") for label in labels)


def _prices_lakhs(prop: PropertyLike) -> list[float]:
    """Listing price plus any per-configuration prices (quoted in crores)."""
    prices = []
    price = as_number(get_field(prop, "price"))
    if price is not None:
        prices.append(price)
    for config in _configurations(prop):
        crores = as_number(config.get("price"))
        if crores is not None:
            prices.append(crores * 100)
    return prices


def _confidence(reason_count: int, score: float) -> Confidence:
    for min_reasons, min_score, level in CONFIDENCE_RULES:
        if reason_count >= min_reasons and score >= min_score:
            return level
    return Confidence.LOW


def score_recommendation(
    prop: PropertyLike,
    intent: Union[str, RecommendationIntent, None] = None,
    behavior: Optional[UserBehavior] = None,
    budget_range: Optional[tuple[float, float]] = None,
    catalog: Sequence[PropertyLike] = (),
) -> Recommendation:
    """
    Score one property for a visitor.

    The base is the property's overall score. Points are added for tags
    matching the intent, for the visitor's preferred types, locations and
    clicked features, for a price inside budget_range (lakhs), for
    similarity to properties they viewed (looked up in catalog), and for
    trending or premium-developer tags. Only the first three reasons are kept.
    """
    intent = _intent(intent)
    behavior = behavior or UserBehavior()
    tags = _tags(prop)
    prop_type = plain_value(get_field(prop, "type"))
    zone = plain_value(get_field(prop, "zone"))
    status = plain_value(get_field(prop, "status"))
    area = str(get_field(prop, "area") or "").lower()

    score = as_number(get_field(prop, "overall_score")) or 0.0
    reasons: list[str] = []

    def add(points: float, reason: str) -> None:
        nonlocal score
        score += points
        reasons.append(reason)

    facts = {
        "tags": tags,
        "zone": zone,
        "status": status,
        "family_layout": _has_family_layout(prop),
    }
    for predicate, points, reason in INTENT_RULES.get(intent, ()):
        if predicate(facts):
            add(points, reason)

    type_matches = sum(1 for t in behavior.property_type_preferences if t == prop_type)
    if type_matches:
        add(type_matches * TYPE_PREFERENCE_POINTS, "Matches your preferred property type")

    location_matches = sum(
        1 for loc in behavior.location_preferences
        if loc.lower() in area or loc == zone
    )
    if location_matches:
        add(location_matches * LOCATION_PREFERENCE_POINTS, "In your preferred area")

    if budget_range:
        low, high = budget_range
        if any(low <= price <= high for price in _prices_lakhs(prop)):
            add(BUDGET_FIT_POINTS, "Within your budget")

    features = [f.lower() for f in behavior.clicked_features]
    matching = [tag for tag in tags if any(f in tag.lower() for f in features)]
    if matching:
        add(len(matching) * FEATURE_MATCH_POINTS, "Has features you've shown interest in")

    if behavior.viewed_properties:
        viewed_ids = set(behavior.viewed_properties)
        viewed = [p for p in catalog if str(get_field(p, "id")) in viewed_ids]
        if any(
            plain_value(get_field(v, "zone")) == zone
            or plain_value(get_field(v, "type")) == prop_type
            or set(_tags(v)) & set(tags)
            for v in viewed
        ):
            add(SIMILAR_TO_VIEWED_POINTS, "Similar to properties you've viewed")

    if status == "active" and "trending" in tags:
        add(TRENDING_POINTS, "Trending property")
    if "premium-developer" in tags:
        add(PREMIUM_DEVELOPER_POINTS, "Reputed developer")

    return Recommendation(
        property_id=str(get_field(prop, "id")),
        score=int(math.floor(score + 0.5)),
        reasons=tuple(reasons[:MAX_REASONS]),
        confidence=_confidence(len(reasons), score),
        property=prop,
    )


def _diversify(ranked: list[Recommendation], limit: int) -> list[Recommendation]:
    """Fill the first slots with new types or zones, the rest by score."""
    picks: list[Recommendation] = []
    used_types: set = set()
    used_zones: set = set()
    for item in ranked:
        if len(picks) >= min(DIVERSE_SLOTS, limit):
            break
        prop_type = plain_value(get_field(item.property, "type"))
        zone = plain_value(get_field(item.property, "zone"))
        if prop_type not in used_types or zone not in used_zones:
            picks.append(item)
            used_types.add(prop_type)
            used_zones.add(zone)

    picked = {id(item) for item in picks}
    rest = [item for item in ranked if id(item) not in picked]
    return (picks + rest)[:limit]


@timed("recommend_properties", logger=logger)
def recommend(
    properties: Iterable[PropertyLike],
    intent: Union[str, RecommendationIntent, None] = None,
    behavior: Optional[UserBehavior] = None,
    current_property_id: Optional[str] = None,
    budget_range: Optional[tuple[float, float]] = None,
    limit: int = DEFAULT_LIMIT,
) -> list[Recommendation]:
    """Rank properties for a visitor, best first, at most limit of them."""
    catalog = list(properties)
    behavior = behavior or UserBehavior()
    if limit <= 0 or not catalog:
        return []

    recently_viewed = set(behavior.viewed_properties[-RECENTLY_VIEWED_WINDOW:])
    excluded = recently_viewed | ({str(current_property_id)} if current_property_id else set())
    candidates = [p for p in catalog if str(get_field(p, "id")) not in excluded]

    scored = [
        score_recommendation(p, intent, behavior, budget_range=budget_range, catalog=catalog)
        for p in candidates
    ]
    ranked = sorted(scored, key=lambda r: r.score, reverse=True)[:limit * 2]
    result = _diversify(ranked, limit)

    logger.debug(
        "Generated recommendations",
        intent=_intent(intent).value,
        candidate_count=len(candidates),
        result_count=len(result),
        behavior_data_points=behavior.data_points
    )
    return result


def recommendation_analytics(
    recommendations: Sequence[Recommendation],
    intent: Union[str, RecommendationIntent, None] = None,
    behavior: Optional[UserBehavior] = None,
) -> RecommendationAnalytics:
    """Summary shown beside the recommendation strip."""
    total = len(recommendations)
    average = sum(r.score for r in recommendations) / total if total else 0
    distribution = {level.value: 0 for level in Confidence}
    for r in recommendations:
        distribution[r.confidence.value] += 1
    return RecommendationAnalytics(
        total_recommendations=total,
        average_score=int(math.floor(average + 0.5)),
        confidence_distribution=distribution,
        intent_optimized=_intent(intent) != RecommendationIntent.NONE,
        behavior_data_points=(behavior or UserBehavior()).data_points,
    )
