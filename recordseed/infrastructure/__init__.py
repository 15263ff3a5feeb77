"""Remote store access: the client protocol, an in-memory client, and the Salesforce adapter."""
