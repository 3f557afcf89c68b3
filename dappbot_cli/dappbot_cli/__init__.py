"""DappBot operator CLI."""
