"""Database models for users, groups, targets, alerts, dashboards and tasks."""