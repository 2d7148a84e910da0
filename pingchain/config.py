"""Configuration for the PingChain conversation engine."""

from pathlib import Path

# Base data directory; all runtime data is stored here
DATA_DIR = Path("data")
DB_PATH = DATA_DIR / "pingchain.db"
DELIVERY_LOG_DIR = DATA_DIR / "logs" / "deliveries"

ENGINE_CONFIG = {
    # LLM (optional memory entry profiling)
    "llm_model": "claude-sonnet-4-6",
    "llm_temperature": 0.2,
    "llm_profiling_enabled": False,

    # Urgency tiers: lower bound in hours since the inbound message
    "urgency_tiers_hours": {"medium": 24, "high": 48, "critical": 72},

    # Reminder thresholds (hours)
    "overdue_threshold_hours": 24,
    "question_threshold_hours": 12,
    "overdue_priority_hours": {"medium": 48, "high": 72},

    # Notification defaults (user-settable)
    "notify_browser": True,
    "notify_email": False,
    "email_provider": "resend",
    "scheduled_reminders": True,
    "high_priority_only": False,

    # Conversation memory
    "memory_cache_entries": 100,
    "memory_summary_window": 20,
    "memory_key_topics": 5,
    "memory_emotional_patterns": 3,
    "memory_pending_items": 3,
    "pending_item_markers": ["follow up", "remind", "schedule", "meeting"],

    # Relationship strength
    "relationship_base_score": 50.0,
    "relationship_frequency_cap": 20.0,
    "relationship_emotional_weight": 20.0,
    "relationship_quality_weight": 10.0,
    "relationship_quality_threshold": 0.7,

    # Communication contracts
    "contract_default_time_of_day": "09:00",
    "contract_default_days_of_week": [1, 2, 3, 4, 5],

    # Follow-ups
    "followup_default_delay_hours": 1,

    # Periodic insight scan
    "insight_scan_interval_seconds": 300,

    # Outbound email
    "email_from": "PingChain <onboarding@resend.dev>",
    "resend_api_url": "https://api.resend.com/emails",
    "sendgrid_api_url": "https://api.sendgrid.com/v3/mail/send",
    "http_timeout_seconds": 10,
    "dashboard_url": "http://localhost:3000/dashboard",
}
