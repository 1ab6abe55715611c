"""Participant identifiers, host command ids and fixed user-facing texts."""

# ---------------------------------------------------------------------------
# Slash commands accepted in a chat request
# ---------------------------------------------------------------------------

COMMAND_QUERY = "query"
COMMAND_SCHEMA = "schema"
COMMAND_DOCS = "docs"

VALID_COMMANDS = frozenset({COMMAND_QUERY, COMMAND_SCHEMA, COMMAND_DOCS})

# Telemetry label for requests without a slash command.
COMMAND_GENERIC = "generic"

# ---------------------------------------------------------------------------
# Host command ids carried by links and buttons
# ---------------------------------------------------------------------------

HOST_COMMAND_CONNECT = "mdb.connectWithParticipant"
HOST_COMMAND_SELECT_DATABASE = "mdb.selectDatabaseWithParticipant"
HOST_COMMAND_SELECT_COLLECTION = "mdb.selectCollectionWithParticipant"
HOST_COMMAND_RUN_QUERY = "mdb.runParticipantQuery"
HOST_COMMAND_OPEN_IN_PLAYGROUND = "mdb.openParticipantQueryInPlayground"
HOST_COMMAND_OPEN_RAW_SCHEMA = "mdb.participantViewRawSchemaOutput"

# ---------------------------------------------------------------------------
# Fixed texts
# ---------------------------------------------------------------------------

EMPTY_REQUEST_MESSAGE = (
    "Please specify a question when using this command. "
    'Usage: @MongoDB /query find documents where "name" contains "database".'
)
ASK_TO_CONNECT_MESSAGE = (
    "Looks like you aren't currently connected, first let's get you connected "
    "to the cluster we'd like to create this query to run against."
)
ADD_CONNECTION_LABEL = "Add new connection"
ASK_FOR_DATABASE_MESSAGE = (
    "What is the name of the database you would like this query to run against?"
)
ASK_FOR_COLLECTION_MESSAGE = (
    "Which collection would you like to query within this database?"
)
ASK_FOR_DATABASE_FOR_SCHEMA_MESSAGE = (
    "What is the name of the database you would like to inspect?"
)
ASK_FOR_COLLECTION_FOR_SCHEMA_MESSAGE = (
    "Which collection would you like to inspect within this database?"
)
SELECT_DATABASE_HINT = (
    "Please select a database by either clicking on an item in the list "
    "or typing the name manually in the chat."
)
SELECT_COLLECTION_HINT = (
    "Please select a collection by either clicking on an item in the list "
    "or typing the name manually in the chat."
)
SHOW_MORE_LABEL = "Show more"
OFF_TOPIC_MESSAGE = "I'm sorry, I can only explain computer science concepts."
FILTERED_MESSAGE = (
    "The response was blocked by the content filter. "
    "Please rephrase your question."
)
SAMPLE_FETCH_WARNING = (
    "An error occurred while fetching the schema and sample documents of the "
    "collection; the query will be generated without them."
)
RUN_ACTION_TITLE = "▶️ Run"
OPEN_IN_PLAYGROUND_ACTION_TITLE = "Open in playground"
OPEN_RAW_SCHEMA_ACTION_TITLE = "Open JSON Output"
