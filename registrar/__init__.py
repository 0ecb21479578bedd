"""
Registrar Service - Hackathon team registration API

Responsibilities:
- Hackathon registry (create, list, open/close registration)
- Team registration, update and withdrawal
- Participant role projection kept in sync with team membership
- Hackathon role management (organizers, judges, mentors)
- Organization-scoped real-time events
"""
