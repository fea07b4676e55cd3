"""
Shared Kernel Module
====================

Generic infrastructure used by both bounded contexts (assist and triage):
logging, middleware, guard stores, Slack delivery, scheduling and the
hot-reloaded classifier rules.

DO NOT add answer or triage business logic to the shared kernel.
"""
