"""Serialized investigation queue: state files, worker loop and trigger handling.

Two processes share the state: the trigger server inserts work and the
single worker drains it. There is no broker and no database; three small
JSON/text files in the data directory are replaced atomically, and an
advisory PID marker keeps at most one worker alive at a time.
"""
