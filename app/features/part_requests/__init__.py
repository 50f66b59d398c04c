"""
Part request pipeline feature package.

Intake (anti-spam, moderation), the request and offer state machines,
notification fan-out and rating eligibility live together in this slice:
domain models, repositories, services, jobs and the API router.
"""
