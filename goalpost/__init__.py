"""goalpost core library: goals, check-ins, todos, inbox triage.

Public API re-exports for convenient imports:
    from goalpost import DocumentStore, CheckInLedger, next_occurrence, ...
"""

# Workspace & settings
from goalpost.workspace import (
    workspace_root,
    get_user_timezone,
    now_local,
    today_local,
    settings_path,
    collection_path,
)
from goalpost.config import Settings, SlackSettings, load_settings

# Errors
from goalpost.errors import (
    GoalpostError,
    ValidationError,
    NotAuthenticated,
    StoreError,
    DuplicateSourceItem,
    CyclicHierarchy,
    InboxStateError,
    IntegrationError,
)

# Store & session
from goalpost.store import (
    DocumentStore,
    GOALS,
    TODOS,
    CHECK_INS,
    INBOX,
    CATEGORIES,
    INTEGRATIONS,
)
from goalpost.session import Session, Snapshot, load_snapshot

# Engines
from goalpost.recurrence import next_occurrence, validate_pattern
from goalpost.tracking import CheckInLedger, ensure_not_future
from goalpost.streaks import (
    round_half_up,
    percent_complete,
    current_streak,
    tracking_summary,
)
from goalpost.aggregator import GoalProgressAggregator, effective_progress

# Goals
from goalpost.goals import (
    validate_goal,
    load_goals,
    create_goal,
    update_goal,
    delete_goal,
    find_goal,
    child_goals,
    parent_options,
    orphaned_goals,
    goals_by_type,
    load_categories,
    seed_categories,
)

# Todos
from goalpost.todos import (
    validate_todo,
    load_todos,
    get_todo,
    create_todo,
    update_todo,
    delete_todo,
    toggle_todo_status,
    create_next_recurrence,
    today_todos,
    filter_todos,
    todos_for_goal,
)

# Inbox
from goalpost.inbox import (
    add_item,
    dismiss,
    bulk_dismiss,
    convert,
    bulk_convert,
    load_items,
    pending_items,
    count_by_source,
)

# Models
from goalpost.models import (
    GoalCategory,
    Goal,
    DailyCheckIn,
    RecurrencePattern,
    Todo,
    InboxItem,
    SlackIntegration,
    CalendarEvent,
    EmailMessage,
)
