"""SQLite schema, applied statement by statement at startup."""

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS Project (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        ownerId TEXT,
        createdAt TEXT NOT NULL,
        updatedAt TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Conversation (
        id TEXT PRIMARY KEY,
        projectId TEXT NOT NULL,
        title TEXT NOT NULL,
        createdAt TEXT NOT NULL,
        updatedAt TEXT NOT NULL,
        FOREIGN KEY (projectId) REFERENCES Project(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_conversation_projectId ON Conversation(projectId)",
    """
    CREATE TABLE IF NOT EXISTS Message (
        id TEXT PRIMARY KEY,
        conversationId TEXT NOT NULL,
        projectId TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        status TEXT,
        createdAt TEXT NOT NULL,
        updatedAt TEXT NOT NULL,
        FOREIGN KEY (conversationId) REFERENCES Conversation(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_message_conversationId ON Message(conversationId)",
    "CREATE INDEX IF NOT EXISTS idx_message_project_status ON Message(projectId, status)",
    """
    CREATE TABLE IF NOT EXISTS File (
        id TEXT PRIMARY KEY,
        projectId TEXT NOT NULL,
        parentId TEXT,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        content TEXT,
        storageId TEXT,
        updatedAt TEXT NOT NULL,
        FOREIGN KEY (projectId) REFERENCES Project(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_file_projectId ON File(projectId)",
    "CREATE INDEX IF NOT EXISTS idx_file_project_parent ON File(projectId, parentId)",
    # Root nodes have a NULL parentId, so the uniqueness key folds it to ''
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_file_sibling_name
    ON File(projectId, IFNULL(parentId, ''), name, type)
    """,
    """
    CREATE TABLE IF NOT EXISTS JobRun (
        id TEXT PRIMARY KEY,
        functionId TEXT NOT NULL,
        eventName TEXT NOT NULL,
        eventData TEXT NOT NULL,
        correlationId TEXT,
        status TEXT NOT NULL,
        error TEXT,
        createdAt TEXT NOT NULL,
        updatedAt TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_jobrun_function_correlation ON JobRun(functionId, correlationId)",
    "CREATE INDEX IF NOT EXISTS idx_jobrun_status ON JobRun(status)",
    """
    CREATE TABLE IF NOT EXISTS JobStep (
        jobRunId TEXT NOT NULL,
        stepId TEXT NOT NULL,
        output TEXT,
        attempts INTEGER NOT NULL,
        completedAt TEXT NOT NULL,
        PRIMARY KEY (jobRunId, stepId),
        FOREIGN KEY (jobRunId) REFERENCES JobRun(id) ON DELETE CASCADE
    )
    """,
]
