"""
Itinerary Merger - Folds updateItinerary payloads into the live itinerary.

The assistant always resends the complete list of days, so days are replaced
wholesale. Activities the user locked (or that are already booked) are the
exception: if the new payload leaves one out, it is put back.
"""
import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from ..errors import MalformedPayloadError
from ..models.itinerary import (
    Activity,
    DayPlan,
    Itinerary,
    TravelType,
    TravelerInfo,
)
from ..models.profile import TripContext
from ..models.tools import ItineraryPatch

logger = logging.getLogger(__name__)


_SCALAR_KEYS = {
    "title": ("title",),
    "destination": ("destination",),
    "dates": ("dates",),
    "travel_type": ("travelType", "travel_type"),
    "total_estimated_cost": ("totalEstimatedCost", "total_estimated_cost"),
}
_TRAVELER_KEYS = ("adults", "children", "infants")


def _pick(args: dict, *keys: str) -> Any:
    for key in keys:
        if key in args:
            return args[key]
    return None


def _coerce_model(model_cls: type[BaseModel], data: dict) -> BaseModel:
    """Validate data, dropping whichever fields fail until the rest validates."""
    data = dict(data)
    names: dict[str, set] = {}
    for name, info in model_cls.model_fields.items():
        keys = {name, info.alias} - {None}
        for key in keys:
            names[key] = keys

    while True:
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            bad = set()
            for err in e.errors():
                if err["loc"]:
                    loc = err["loc"][0]
                    bad |= {k for k in names.get(loc, {loc}) if k in data}
            if not bad:
                logger.warning(f"Could not salvage {model_cls.__name__} payload, using defaults")
                return model_cls()
            for key in bad:
                logger.warning(f"Dropping malformed {model_cls.__name__}.{key}: {data[key]!r}")
                del data[key]


def _same_activity(a: Activity, b: Activity) -> bool:
    if a.id and b.id:
        return a.id == b.id
    return a.title.strip().casefold() == b.title.strip().casefold()


def _match_index(
    candidates: list[Activity],
    activity: Activity,
    claimed: set[int],
    same_time: bool
) -> Optional[int]:
    """Index of the unclaimed incoming entry that stands for a protected activity."""
    for i, candidate in enumerate(candidates):
        if i in claimed or not _same_activity(candidate, activity):
            continue
        if same_time and candidate.time.strip() != activity.time.strip():
            continue
        return i
    return None


class ItineraryMerger:
    """Applies updateItinerary payloads under the lock-preservation rules."""

    # ---------------------------------------------------------------- parsing

    def coerce_patch(self, arguments: dict) -> ItineraryPatch:
        """
        Build an ItineraryPatch from raw tool arguments.

        Every field is interpreted on its own. A field that cannot be read is
        treated as absent; the rest of the payload still applies.
        """
        if not isinstance(arguments, dict):
            logger.warning(f"updateItinerary arguments are not an object: {type(arguments).__name__}")
            return ItineraryPatch()

        fields: dict[str, Any] = {}

        for field, keys in _SCALAR_KEYS.items():
            try:
                fields[field] = self._read_text(field, _pick(arguments, *keys))
            except MalformedPayloadError as e:
                logger.warning(str(e))

        for field in _TRAVELER_KEYS:
            try:
                fields[field] = self._read_count(field, arguments.get(field))
            except MalformedPayloadError as e:
                logger.warning(str(e))

        try:
            fields["days"] = self._read_days(arguments.get("days"))
        except MalformedPayloadError as e:
            logger.warning(str(e))

        return ItineraryPatch(**{k: v for k, v in fields.items() if v is not None})

    def _read_text(self, field: str, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise MalformedPayloadError(field, value)
        return str(value)

    def _read_count(self, field: str, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool):
            raise MalformedPayloadError(field, value)
        try:
            count = int(value)
        except (TypeError, ValueError):
            raise MalformedPayloadError(field, value)
        if count < 0:
            raise MalformedPayloadError(field, value)
        return count

    def _read_days(self, value: Any) -> Optional[list[DayPlan]]:
        if value is None:
            return None
        if not isinstance(value, list):
            raise MalformedPayloadError("days", value)

        days = []
        for raw_day in value:
            if not isinstance(raw_day, dict):
                logger.warning(f"Skipping day entry that is not an object: {raw_day!r}")
                continue
            activities = []
            raw_activities = raw_day.get("activities") or []
            if not isinstance(raw_activities, list):
                logger.warning(f"Activities for {raw_day.get('date')!r} are not a list, ignoring")
                raw_activities = []
            for raw_activity in raw_activities:
                if not isinstance(raw_activity, dict):
                    logger.warning(f"Skipping activity that is not an object: {raw_activity!r}")
                    continue
                activities.append(_coerce_model(Activity, raw_activity))

            day_title = _pick(raw_day, "dayTitle", "day_title")
            days.append(DayPlan(
                date=str(raw_day.get("date") or ""),
                day_title=str(day_title) if day_title is not None else None,
                activities=activities,
            ))
        return days

    # ---------------------------------------------------------------- merging

    def merge(self, itinerary: Itinerary, update: Union[ItineraryPatch, dict]) -> Itinerary:
        """
        Fold an update into the itinerary in place and return it.

        Args:
            itinerary: The live itinerary; mutated.
            update: A parsed patch, or raw updateItinerary arguments.
        """
        patch = update if isinstance(update, ItineraryPatch) else self.coerce_patch(update)

        if patch.title:
            itinerary.title = patch.title
        if patch.destination:
            itinerary.destination = patch.destination
        if patch.dates:
            itinerary.dates = patch.dates
        if patch.travel_type:
            travel_type = TravelType.parse(patch.travel_type)
            if travel_type is not None:
                itinerary.travel_type = travel_type
            else:
                logger.info(f"Ignoring unknown travel type {patch.travel_type!r}")
        if patch.total_estimated_cost:
            itinerary.total_estimated_cost = patch.total_estimated_cost

        itinerary.travelers = TravelerInfo(
            adults=patch.adults if patch.adults is not None else itinerary.travelers.adults,
            children=patch.children if patch.children is not None else itinerary.travelers.children,
            infants=patch.infants if patch.infants is not None else itinerary.travelers.infants,
        )

        if patch.days is not None:
            itinerary.days = self._merge_days(itinerary.days, patch.days)

        return itinerary

    def _merge_days(self, prior_days: list[DayPlan], incoming_days: list[DayPlan]) -> list[DayPlan]:
        merged = [day.model_copy(deep=True) for day in incoming_days]

        for prior_day in prior_days:
            protected = [a for a in prior_day.activities if a.is_protected]
            if not protected:
                continue

            target = next((d for d in merged if d.date == prior_day.date), None)
            if target is None:
                target = DayPlan(date=prior_day.date, day_title=prior_day.day_title, activities=[])
                merged.append(target)
                logger.info(f"Restoring dropped day {prior_day.date!r} to keep locked activities")

            # Same-titled entries pair up by start time first
            incoming_count = len(target.activities)
            claimed: set[int] = set()
            unmatched = list(protected)
            for same_time in (True, False):
                remaining = []
                for activity in unmatched:
                    idx = _match_index(target.activities[:incoming_count], activity, claimed, same_time)
                    if idx is None:
                        remaining.append(activity)
                    else:
                        claimed.add(idx)
                        target.activities[idx] = activity.model_copy(deep=True)
                unmatched = remaining

            for activity in unmatched:
                logger.info(f"Re-inserting locked activity {activity.title!r} on {prior_day.date!r}")
                target.activities.append(activity.model_copy(deep=True))

        return merged

    # ------------------------------------------------------- direct edits

    def set_locked(
        self,
        itinerary: Itinerary,
        day_date: str,
        activity_key: str,
        locked: Optional[bool] = None
    ) -> Optional[Activity]:
        """
        Pin or unpin one activity, matched by id or title within a day.
        Passing locked=None toggles the current state.
        """
        day = itinerary.find_day(day_date)
        if day is None:
            return None

        key = activity_key.strip().casefold()
        for i, activity in enumerate(day.activities):
            if activity.id == activity_key or activity.title.strip().casefold() == key:
                new_state = (not activity.is_locked) if locked is None else locked
                day.activities[i] = activity.model_copy(update={"is_locked": new_state})
                return day.activities[i]
        return None

    def seed(self, itinerary: Itinerary, context: TripContext) -> Itinerary:
        """Reset the itinerary to a fresh trip described by the setup form."""
        travel_type = TravelType.LEISURE
        for vibe in context.vibes:
            parsed = TravelType.parse(vibe)
            if parsed is not None:
                travel_type = parsed
                break

        if context.is_multi_city:
            title, destination = "Multi-City Adventure", "Multi-City Route"
        else:
            title, destination = f"Trip to {context.destination}", context.destination

        dates = ""
        if context.start_date:
            dates = context.start_date
            if context.end_date:
                dates += f" - {context.end_date}"

        fresh = Itinerary(
            title=title,
            destination=destination,
            dates=dates,
            travel_type=travel_type,
            travelers=context.travelers.model_copy(),
        )
        for field in Itinerary.model_fields:
            setattr(itinerary, field, getattr(fresh, field))
        return itinerary


# Global merger instance
itinerary_merger: Optional[ItineraryMerger] = None


def get_itinerary_merger() -> ItineraryMerger:
    """Get or create the global merger."""
    global itinerary_merger
    if itinerary_merger is None:
        itinerary_merger = ItineraryMerger()
    return itinerary_merger
