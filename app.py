"""
One Good Thing - Daily Gratitude Journal API
One short good thing per day, an AI reflection, and the stats that grow from it.
"""

import logging
from datetime import date, datetime
from typing import Optional, Dict, Any, List
from functools import wraps
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Flask, request, jsonify, g
from flask_cors import CORS
from pydantic import BaseModel, Field, StrictInt, StrictStr, ValidationError, field_validator

import config
import ai_client
import analyzer
from ai_client import AIServiceError
from entries import (
    EntryStore, JournalEntry, EntryInput, EntryError, EntryValidationError,
    EntryConflictError, parse_entry_date, describe_validation_error,
)
from sentiment import infer_mood

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config["DATA_FILE"] = config.DATA_FILE
CORS(app, origins=config.CORS_ORIGINS)

if ai_client.is_configured():
    logger.info("Groq API configured for AI features")
else:
    logger.warning("No GROQ_API_KEY found. Reflections will fall back to local responses")


# =============================================================================
# Request context
# =============================================================================

def get_store() -> EntryStore:
    return EntryStore(app.config["DATA_FILE"])


def resolve_today() -> date:
    """
    The viewer's current calendar day.

    This is the only place the clock is read. The zone comes from the
    X-Timezone header or ``tz`` query parameter, defaulting to
    DEFAULT_TIMEZONE.
    """
    tz_name = request.headers.get("X-Timezone") or request.args.get("tz") or config.DEFAULT_TIMEZONE
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise EntryValidationError(f"Unknown time zone {tz_name!r}")
    return datetime.now(tz).date()


def require_owner(f):
    """Require the owner id resolved upstream by the auth provider."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        owner_id = (request.headers.get("X-Owner-Id") or "").strip()
        if not owner_id:
            return jsonify({"error": "Authentication required"}), 401
        g.owner_id = owner_id
        return f(*args, **kwargs)
    return wrapper


def handle_errors(f):
    """Decorator for consistent error handling."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except EntryError as e:
            return jsonify({"error": e.message}), e.status_code
        except AIServiceError as e:
            logger.warning(f"AI error in {f.__name__}: {e.message}")
            return jsonify({"error": e.message}), e.status_code
        except Exception as e:
            logger.exception(f"Error in {f.__name__}: {e}")
            return jsonify({"error": "An unexpected error occurred"}), 500
    return wrapper


# =============================================================================
# Request Validation
# =============================================================================

class ReflectionRequest(BaseModel):
    entry_text: StrictStr = Field(..., alias="entryText")
    mood_score: Optional[StrictInt] = Field(None, ge=1, le=5, alias="moodScore")

    @field_validator("entry_text")
    @classmethod
    def _text_bounds(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("entryText cannot be empty")
        if len(value) > config.MAX_AI_INPUT_LENGTH:
            raise ValueError(f"entryText must be less than {config.MAX_AI_INPUT_LENGTH} characters")
        return value


class MonthlyReflectionRequest(BaseModel):
    month_start: date = Field(..., alias="monthStart")
    month_end: date = Field(..., alias="monthEnd")

    @field_validator("month_start", "month_end", mode="before")
    @classmethod
    def _calendar_date(cls, value):
        try:
            return parse_entry_date(value)
        except EntryValidationError as e:
            raise ValueError(e.message)


def parse_body(model, body: Any):
    """Validate a JSON body against a request model."""
    if not isinstance(body, dict):
        raise EntryValidationError("Invalid request body")
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise EntryValidationError(describe_validation_error(e))


def optional_date_arg(name: str) -> Optional[date]:
    value = request.args.get(name)
    return parse_entry_date(value) if value else None


# =============================================================================
# Serializers
# =============================================================================

def grid_to_api(grid: List[analyzer.GridDay], today: Optional[date] = None) -> List[Dict[str, Any]]:
    return [
        {
            "date": day.date.isoformat(),
            "day": day.date.strftime("%a")[0],
            "has_entry": day.has_entry,
            "mood_score": day.mood_score,
            "is_today": day.date == today,
        }
        for day in grid
    ]


def summary_to_api(summary: analyzer.StreakSummary) -> Dict[str, Any]:
    data = summary._asdict()
    data["last_entry_date"] = summary.last_entry_date.isoformat() if summary.last_entry_date else None
    return data


def milestones_to_api(streak: int) -> Dict[str, Any]:
    upcoming = analyzer.next_milestone(streak)
    return {
        "badges": [m._asdict() for m in analyzer.milestones(streak)],
        "next_milestone": upcoming._asdict() if upcoming else None,
    }


# =============================================================================
# Reflection helper
# =============================================================================

def reflect_on_entry(text: str, mood_score: Optional[int]) -> Dict[str, Any]:
    """
    AI reflection for a new entry, degrading to a local response.
    A missing mood is taken from the AI when it gives one, else from VADER.
    """
    try:
        result = ai_client.generate_reflection(text, mood_score)
        reflection = result["reflection"]
        mood = result["mood_score"]
        ai_generated = True
    except AIServiceError as e:
        logger.warning(f"Reflection unavailable, using fallback: {e.message}")
        reflection = None
        mood = mood_score
        ai_generated = False

    if mood is None:
        mood = infer_mood(text)
    if reflection is None:
        reflection = ai_client.fallback_reflection(mood)

    return {"reflection": reflection, "mood_score": mood, "ai_generated": ai_generated}


# =============================================================================
# Entry Routes
# =============================================================================

@app.route("/api/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "ai_configured": ai_client.is_configured()})


@app.route("/api/entries", methods=["GET"])
@handle_errors
@require_owner
def list_entries():
    """List the owner's entries, optionally within start/end."""
    start = optional_date_arg("start")
    end = optional_date_arg("end")
    entries = get_store().list_entries(g.owner_id, start, end)
    return jsonify({"entries": [e.to_api() for e in entries], "count": len(entries)})


@app.route("/api/entries/<date_key>", methods=["GET"])
@handle_errors
@require_owner
def get_entry(date_key: str):
    """Get a specific entry by date."""
    entry = get_store().get_entry(g.owner_id, parse_entry_date(date_key))
    return jsonify(entry.to_api())


@app.route("/api/entries", methods=["POST"])
@handle_errors
@require_owner
def create_entry():
    """Save today's good thing with an AI reflection."""
    payload = EntryInput.parse(request.get_json(silent=True))
    today = resolve_today()
    entry_date = payload.entry_date or today

    if entry_date > today:
        raise EntryValidationError("Entries can't be dated in the future")

    store = get_store()
    if store.has_entry(g.owner_id, entry_date):
        raise EntryConflictError(f"You already wrote your good thing for {entry_date.isoformat()}")

    reflection = reflect_on_entry(payload.text, payload.mood_score)

    entry = store.insert(JournalEntry(
        owner_id=g.owner_id,
        entry_date=entry_date,
        text=payload.text,
        mood_score=reflection["mood_score"],
        tags=payload.tags,
        ai_reflection=reflection["reflection"],
    ))

    summary = analyzer.streak_summary(store.list_entries(g.owner_id), today)
    milestone = analyzer.reached_milestone(summary.current_streak) if entry_date == today else None

    return jsonify({
        "saved": True,
        "entry": entry.to_api(),
        "ai_generated": reflection["ai_generated"],
        "streak": summary.current_streak,
        "milestone": milestone._asdict() if milestone else None,
    }), 201


@app.route("/api/entries/<date_key>", methods=["PUT"])
@handle_errors
@require_owner
def update_entry(date_key: str):
    """Update text, mood or tags of an existing entry."""
    day = parse_entry_date(date_key)
    payload = EntryInput.parse(request.get_json(silent=True))
    store = get_store()
    current = store.get_entry(g.owner_id, day)

    changes: Dict[str, Any] = {"text": payload.text}
    if "mood_score" in payload.model_fields_set:
        changes["mood_score"] = payload.mood_score
    if "tags" in payload.model_fields_set:
        changes["tags"] = payload.tags

    if payload.text != current.text:
        reflection = reflect_on_entry(payload.text, changes.get("mood_score", current.mood_score))
        changes["ai_reflection"] = reflection["reflection"]
        changes.setdefault("mood_score", reflection["mood_score"])

    entry = store.update(g.owner_id, day, changes)
    return jsonify({"saved": True, "entry": entry.to_api()})


@app.route("/api/entries/<date_key>", methods=["DELETE"])
@handle_errors
@require_owner
def delete_entry(date_key: str):
    """Delete an entry."""
    get_store().delete(g.owner_id, parse_entry_date(date_key))
    return jsonify({"deleted": True})


# =============================================================================
# Timeline Routes
# =============================================================================

@app.route("/api/years", methods=["GET"])
@handle_errors
@require_owner
def get_years():
    """Get list of years with entries."""
    entries = get_store().list_entries(g.owner_id)
    years = {e.entry_date.year for e in entries}
    return jsonify(sorted(years, reverse=True))


@app.route("/api/timeline/<int:year>/<int:month>", methods=["GET"])
@handle_errors
@require_owner
def get_month_timeline(year: int, month: int):
    """Calendar grid and entry list for one month."""
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise EntryValidationError("Invalid month")

    start = date(year, month, 1)
    end = analyzer.heatmap_range(start, months_back=0)[1]
    entries = get_store().list_entries(g.owner_id, start, end)

    return jsonify({
        "month_name": start.strftime("%B %Y"),
        "calendar": grid_to_api(analyzer.calendar_grid(entries, start, end), resolve_today()),
        "entries": [e.to_api() for e in reversed(entries)],
    })


# =============================================================================
# Analytics & Insights Routes
# =============================================================================

@app.route("/api/stats", methods=["GET"])
@handle_errors
@require_owner
def get_stats():
    """Streaks, activity grids and milestones."""
    entries = get_store().list_entries(g.owner_id)
    today = resolve_today()

    summary = analyzer.streak_summary(entries, today)
    heat_start, heat_end = analyzer.heatmap_range(today, config.HEATMAP_MONTHS_BACK)
    sparkline = analyzer.mood_sparkline(
        entries, today, days=config.INSIGHT_WINDOW_DAYS, cap=config.SPARKLINE_POINTS
    )

    return jsonify({
        "today": today.isoformat(),
        "streak": summary_to_api(summary),
        "encouragement": analyzer.encouragement_message(summary),
        "journaled_today": summary.last_entry_date == today,
        "week_chain": grid_to_api(analyzer.activity_grid(entries, today, 7), today),
        "heatmap": grid_to_api(analyzer.calendar_grid(entries, heat_start, heat_end), today),
        "mood_sparkline": [
            {"date": p.date.isoformat(), "mood_score": p.mood_score} for p in sparkline
        ],
        **milestones_to_api(summary.current_streak),
    })


@app.route("/api/insights", methods=["GET"])
@handle_errors
@require_owner
def get_insights():
    """Mood, weekday and theme insights over a trailing window."""
    days = request.args.get("days", config.INSIGHT_WINDOW_DAYS, type=int)
    if not 1 <= days <= config.MAX_INSIGHT_WINDOW_DAYS:
        raise EntryValidationError(f"days must be between 1 and {config.MAX_INSIGHT_WINDOW_DAYS}")
    all_entries = get_store().list_entries(g.owner_id)

    if len(analyzer.unique_days(all_entries)) < config.MIN_ENTRIES_FOR_INSIGHTS:
        return jsonify({
            "has_data": False,
            "message": f"Add at least {config.MIN_ENTRIES_FOR_INSIGHTS} entries to unlock personalized insights.",
        })

    today = resolve_today()
    window = analyzer.entries_in_window(all_entries, today, days)
    avg_mood = analyzer.average_mood(window)
    happiest = analyzer.weekday_affinity(window)
    themes = analyzer.tag_frequency(window, top_k=5)

    return jsonify({
        "has_data": True,
        "window_days": days,
        "entries_count": len(window),
        "average_mood": avg_mood,
        "positivity": analyzer.positivity_label(avg_mood),
        "mood_trend": analyzer.mood_trend(window),
        "happiest_day": happiest._asdict() if happiest else None,
        "top_themes": [t._asdict() for t in themes],
        "weekday_breakdown": analyzer.weekday_breakdown(window),
        "mood_chart": [
            {"date": e.entry_date.strftime("%b %d"), "mood": e.mood_score}
            for e in window if e.mood_score is not None
        ],
    })


@app.route("/api/memories", methods=["GET"])
@handle_errors
@require_owner
def get_memories():
    """Past entries worth resurfacing."""
    entries = get_store().list_entries(g.owner_id)
    memories = analyzer.resurface_memories(entries, resolve_today())
    return jsonify({
        "memories": [{**m.entry.to_api(), "reason": m.reason} for m in memories]
    })


# =============================================================================
# AI Feature Routes
# =============================================================================

@app.route("/api/reflection", methods=["POST"])
@handle_errors
@require_owner
def reflection():
    """Reflection (and mood when not given) for a piece of text."""
    body = parse_body(ReflectionRequest, request.get_json(silent=True))
    return jsonify(ai_client.generate_reflection(body.entry_text, body.mood_score))


@app.route("/api/quote", methods=["POST"])
@handle_errors
@require_owner
def shareable_quote():
    """Short shareable quote from an entry."""
    body = parse_body(ReflectionRequest, request.get_json(silent=True))
    return jsonify({"quote": ai_client.generate_quote(body.entry_text)})


@app.route("/api/insights/life", methods=["GET"])
@handle_errors
@require_owner
def life_insight():
    """AI reflection on the last 30 days."""
    today = resolve_today()
    entries = analyzer.entries_in_window(
        get_store().list_entries(g.owner_id), today, config.INSIGHT_WINDOW_DAYS
    )

    if not entries:
        return jsonify({"insight": None})

    avg_mood = analyzer.average_mood(entries)
    trend = analyzer.mood_trend(entries)
    tracked = sum(1 for e in entries if e.mood_score is not None)

    insight = ai_client.generate_life_insight(entries, avg_mood, trend, tracked)
    return jsonify({
        "insight": insight,
        "average_mood": avg_mood,
        "mood_trend": trend,
        "entries_analyzed": len(entries),
    })


@app.route("/api/insights/monthly", methods=["POST"])
@handle_errors
@require_owner
def monthly_reflection():
    """AI monthly reflection with joy stats."""
    body = parse_body(MonthlyReflectionRequest, request.get_json(silent=True))
    if body.month_end < body.month_start:
        raise EntryValidationError("monthEnd must not be before monthStart")

    entries = analyzer.entries_in_range(
        get_store().list_entries(g.owner_id), body.month_start, body.month_end
    )
    if len(entries) < config.MIN_ENTRIES_FOR_INSIGHTS:
        raise EntryValidationError("Not enough entries for this month")

    avg_mood = analyzer.average_mood(entries)
    themes = analyzer.tag_frequency(entries, top_k=None)
    top_themes = [(t.tag, t.count) for t in themes[:5]]

    summary, highlights = ai_client.generate_monthly_reflection(entries, avg_mood, top_themes)

    return jsonify({
        "reflection": {
            "summary": summary,
            "highlights": highlights,
            "themes": {t.tag: t.count for t in themes},
            "joy_stats": {
                "days_tracked": len(entries),
                "avg_mood": avg_mood,
                "positivity": analyzer.positivity_label(avg_mood),
            },
        }
    })


# =============================================================================
# Data Management Routes
# =============================================================================

@app.route("/api/export", methods=["GET"])
@handle_errors
@require_owner
def export_data():
    """Export the owner's journal data."""
    return jsonify(get_store().export_owner(g.owner_id))


@app.route("/api/import", methods=["POST"])
@handle_errors
@require_owner
def import_data():
    """Import the owner's journal data from a backup."""
    body = request.get_json(silent=True)

    if not body or not isinstance(body, dict):
        raise EntryValidationError("Invalid data format")

    if "entries" not in body:
        raise EntryValidationError("Missing 'entries' field")

    count = get_store().import_owner(g.owner_id, body["entries"])
    return jsonify({"imported": True, "entries_count": count})


@app.route("/api/clear", methods=["DELETE"])
@handle_errors
@require_owner
def clear_data():
    """Clear the owner's journal data."""
    get_store().clear_owner(g.owner_id)
    return jsonify({"cleared": True})


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    logger.info("Starting One Good Thing server...")
    app.run(debug=True, port=5000)
