from .db import (
    Base,
    Group,
    GroupMember,
    CalendarEvent,
    Reminder,
    Acknowledgment,
    ReminderStatus,
    AcknowledgmentMethod,
    utcnow,
    configure_engine,
    create_all,
    dispose_engine,
    compute_reminder_time,
    create_reminder,
    update_reminder,
    get_reminder,
    fetch_imminent_reminders,
    fetch_overdue_reminders,
    fetch_due_reminders,
    transition_reminder,
    mark_reminder_sent,
    mark_reminder_failed,
    insert_acknowledgment,
    list_acknowledgments,
)  # noqa: F401
