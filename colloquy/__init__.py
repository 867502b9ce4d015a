# Colloquy package
# Modules:
#   models.py    : Meeting / Question / FeedbackEntry / RespondentProfile / HodResponse records
#   errors.py    : NotFound, ValidationError, AuthorizationError, AggregationSkip
#   roles.py     : Respondent classification, privilege and audience helpers
#   scheduler.py : Meeting lifecycle state machine (core logic)
#   gate.py      : Time-gated question visibility (core logic)
#   stats.py     : Feedback rollup engine (core logic)
#   db.py        : Database connection and query helpers
#   store.py     : Store boundary: get / list / create / update / upsert
#   service.py   : Meeting, question and HOD response operations over the store
#   feedback.py  : Feedback submission
#   reports.py   : Rollup reports and tabular views
#   jobs.py      : Periodic meeting status sweep
