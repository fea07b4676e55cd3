"""
Triage Module
=============

Bounded Context for support tickets, widget telemetry and triage reports.

Responsibilities:
- Ticket intake with answer-first deflection through the assist context
- Keyword classification into user_error, valid_bug, system_failure, feature_request
- Rate limiting and duplicate suppression for submissions
- Slack alerts for system failures and high/critical tickets
- Telemetry capture with abuse flagging
- Periodic triage reports with clusters, suggested actions and a Slack digest
- Operator listings and ticket updates
"""

__version__ = "1.0.0"
