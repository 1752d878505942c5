"""
yamf: marks automated acceptance checks run against student submissions.

Marks are declared on checks (see yamf.marks), collected while the checks run
(see yamf.listener) and handed to a reporter together with the evidence
captured for each check (see yamf.attachments).
"""

__version__ = "1.0"
