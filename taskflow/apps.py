from django.apps import AppConfig


class TaskflowConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "taskflow"
    verbose_name = "Task workflow and productivity"
