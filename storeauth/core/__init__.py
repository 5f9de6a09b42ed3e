"""Core authorization engine: roles, scope facts, decisions and auditing."""
