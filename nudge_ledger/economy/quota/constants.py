from datetime import timedelta

WEEKLY_WINDOW = timedelta(days=7)
