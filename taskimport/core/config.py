from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "dev"
    service_name: str = "Task CSV Import"

    postgres_url: str = "postgresql+psycopg://app:app@db:5432/app"

    jwt_secret: str = "change-me"

    # Middleware configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_format: str = "json"  # json or text
    enable_request_logging: bool = True

    # Metrics configuration (CloudWatch EMF via logs)
    enable_metrics: bool = True
    metrics_namespace: str = ""  # Defaults to service_name

    # Server-side import routines (optional accelerators)
    enable_import_accelerator: bool = True  # Set to False to always use direct inserts
    import_routine_schema: str = "public"
    task_import_routine: str = "create_tasks_from_csv_import"
    user_provision_routine: str = "create_users_from_csv_import"

    # Task vocabulary defaults
    default_task_priority: str = "Medium"
    default_task_status: str = "To Do"

    # Import limits
    max_import_rows: int = 5000
    max_task_name_length: int = 500

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
