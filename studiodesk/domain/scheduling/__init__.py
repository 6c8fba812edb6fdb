"""
Scheduling Domain

Deferred notification jobs for bookings and invoices.

Structure:
- jobs.py       # JobKind, ScheduledJob, BackoffPolicy
- queue.py      # InMemoryJobQueue (in-process), ArqJobQueue (Redis)
- scheduler.py  # JobScheduler: event -> delayed job
- runner.py     # JobRunner (state re-check + dispatch), InProcessWorker
- sweeper.py    # Reconciliation sweeps (hourly / daily)

Jobs are at-least-once. Every job re-reads its booking or invoice before
sending and is skipped when the subject no longer needs the notification.
"""
