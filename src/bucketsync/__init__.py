"""bucketsync - keep a local folder and a remote bucket in sync."""
