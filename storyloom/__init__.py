"""Character memory, context retrieval and campaign turn arbitration."""
