"""Business logic: users, expenses, receipt storage and the AI collaborator."""
