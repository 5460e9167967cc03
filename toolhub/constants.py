DB_SCHEMA = "toolhub"
