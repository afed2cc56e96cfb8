"""Team Desk: role-based team management dashboard backed by a read-through cache."""
