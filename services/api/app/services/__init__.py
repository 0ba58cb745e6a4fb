"""Business logic services.

Services contain all business logic and are called by routes.
Services should be deterministic when possible and accept dependencies explicitly:
every service takes the MetricsStore (and, where it fans out, the
NotificationDispatcher) in its constructor.
"""
