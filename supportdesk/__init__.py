"""
Support Desk
============

KB-grounded answers, relevance gating and ticket triage for embedded
support widgets.

Bounded contexts:
- assist: question answering from the support KB
- triage: tickets, telemetry, alerts and triage reports
- shared: logging, middleware, guards, Slack and scheduling
"""

__version__ = "1.0.0"
