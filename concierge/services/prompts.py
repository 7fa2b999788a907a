"""
Prompts - System instruction and the canned requests the UI sends on the user's behalf.
"""
from typing import Optional

from ..models.itinerary import Activity
from ..models.profile import TripContext, UserProfile


CONCIERGE_SYSTEM_PROMPT = """You are 'Itinerary', an exclusive, high-end travel concierge. Your mission is to curate bespoke travel experiences.

YOUR PERSONA:
- Professional, polished, and enthusiastic.
- Detail-oriented and proactive.
- You speak in a natural, human way (not robotic).
{loyalty_context}
INTERACTION PROTOCOL:
1. Discovery: Do NOT generate a full itinerary immediately. Ask clarifying questions first:
   travel dates, duration, destination (if unknown), party size (adults/kids) and vibe.
2. Drafting the plan:
   - Always include a HOTEL/ACCOMMODATION option by default.
   - Provide an estimated cost for EVERY activity (e.g. "$25", "Free", "$200/night")
     and the totalEstimatedCost for the whole trip.
   - When you have enough info, call updateItinerary with the COMPLETE list of days.
   - Populate imageQuery for every activity.
3. Presentation:
   - Summarize your recommendations in Markdown, linking hotels, restaurants and attractions.
   - Call suggestNextSteps at the end of every turn with 2-4 actionable options.
   - Ask for feedback.

ITINERARY DATA RULES:
- category: strictly one of flight, accommodation, dining, activity, transit, logistics.
- bookingStatus: start as 'suggested'.
- isLocked: if the user locked an activity, keep it unchanged in every future update."""


LOYALTY_CONTEXT_TEMPLATE = """
USER LOYALTY PROFILE & PREFERENCES:
The user holds the following credit cards and statuses. Prioritize vendors, airlines and hotels that maximize these benefits.
{cards}

Strategy:
- Amex Platinum/Centurion: prefer "Fine Hotels & Resorts" properties, Centurion Lounges and Delta flights.
- Chase Sapphire: prefer Hyatt, United, or Ultimate Rewards transfer partners.
- Brand specific cards (Delta, Marriott, etc.): prefer that brand.
- Explain in the chat why a hotel or flight was chosen with respect to these cards.
"""

GREETING = (
    "Hello! I'm your travel assistant. You can use the trip planner above to set "
    "your preferences, or just start chatting."
)


def build_loyalty_context(profile: Optional[UserProfile]) -> str:
    """Describe the user's loyalty cards, or return '' when there are none."""
    if profile is None or not profile.loyalty_cards:
        return ""
    cards = "\n".join(
        f"- {c.provider} {c.card_name} (Points: {c.points_balance})"
        for c in profile.loyalty_cards
    )
    return LOYALTY_CONTEXT_TEMPLATE.format(cards=cards)


def build_system_prompt(profile: Optional[UserProfile] = None) -> str:
    """Full system instruction for a session."""
    return CONCIERGE_SYSTEM_PROMPT.format(loyalty_context=build_loyalty_context(profile))


def join_with_and(items: list[str]) -> str:
    """'a', 'a and b', 'a, b and c'."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return ", ".join(items[:-1]) + " and " + items[-1]


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def build_trip_request(context: TripContext) -> str:
    """Opening request composed from the trip-setup form."""
    travelers = context.travelers
    party = []
    if travelers.adults > 0:
        party.append(_plural(travelers.adults, "adult", "adults"))
    if travelers.children > 0:
        party.append(_plural(travelers.children, "child", "children"))
    if travelers.infants > 0:
        party.append(_plural(travelers.infants, "infant", "infants"))

    vibe = ", ".join(context.vibes).lower() + " " if context.vibes else ""

    if context.is_multi_city and context.legs:
        route = []
        for leg in context.legs:
            part = f"returning home to {leg.destination}" if leg.is_home else f"{leg.origin} to {leg.destination}"
            if leg.date:
                part += f" on {leg.date}"
            route.append(part)
        prompt = f"I'm planning a {vibe}multi-city trip. Route: {'; then '.join(route)}. "
    else:
        when = ""
        if context.start_date and context.end_date:
            when = f" from {context.start_date} to {context.end_date}"
        elif context.start_date:
            when = f" starting {context.start_date}"
        prompt = f"I'm planning a {vibe}trip to {context.destination} leaving from {context.origin}{when}. "

    prompt += f"It will be for {', '.join(party)}."

    needs = []
    if context.needs.flight:
        needs.append("flights")
    if context.needs.hotel:
        needs.append("hotels")
    if context.needs.car:
        needs.append("car rental")
    if context.needs.cruise:
        needs.append("cruise")
    if needs:
        prompt += f" I'd like help booking {join_with_and(needs)}."

    prompt += " Please suggest an itinerary. Start by offering flight and hotel options if needed."
    return prompt


def with_selected_suggestions(text: str, selected: list[str]) -> str:
    """Append the suggestion chips the user ticked to their message."""
    if not selected:
        return text
    return f"{text}\n\nPlease proceed with: {join_with_and(list(selected))}"


def regenerate_activity_request(activity: Activity, day_date: str) -> str:
    return (
        f'For the itinerary on {day_date}, I don\'t like the activity "{activity.title}". '
        "Please remove it and suggest a better alternative for that time slot. Keep everything else the same."
    )


def remove_activity_request(activity: Activity, day_date: str) -> str:
    return f'Please remove "{activity.title}" from the itinerary on {day_date}.'


def choice_selected_request(activity: Activity) -> str:
    return (
        f'I have selected the option "{activity.title}". '
        "Please add it to my itinerary plan and remove the other options."
    )
