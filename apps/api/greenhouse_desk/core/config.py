from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./greenhouse_desk.db"
    db_pool_timeout_seconds: int = 5

    jwt_secret: str = "dev-secret"
    jwt_expires_min: int = 60
    jwt_refresh_expires_min: int = 60 * 24 * 7
    allowed_email_domains: str = ""

    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    # Outbound mail: smtp | graph | resend (empty disables delivery)
    mail_backend: str = ""
    mail_from: str = ""
    mail_from_name: str = "Great Lakes Greenhouses"
    mail_reply_to: str = ""
    smtp_host: str = ""
    smtp_port: int = 25
    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com/emails"

    # Microsoft Graph (sendMail + mailbox polling)
    graph_tenant_id: str = ""
    graph_client_id: str = ""
    graph_client_secret: str = ""
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    graph_login_url: str = "https://login.microsoftonline.com"

    mail_worker_enabled: bool = False
    mail_poll_seconds: int = 60
    mail_batch_size: int = 10

    inbound_poll_enabled: bool = False
    inbound_poll_seconds: int = 300
    inbound_lookback_hours: int = 24
    inbound_webhook_secret: str = ""

    # Federated sign-in for the public ticket form (OIDC id_token)
    public_form_jwks_url: str = ""
    public_form_audience: str = ""
    public_form_issuer: str = ""
    public_form_require_verified_email: bool = True
    public_form_username_as_email: bool = False

    http_timeout_seconds: float = 8.0
    app_base_url: str = "http://localhost:5173"
    auto_db_bootstrap: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def allowed_email_domains_list(self) -> list[str]:
        return [d.strip().lower() for d in self.allowed_email_domains.split(",") if d.strip()]

    @property
    def graph_configured(self) -> bool:
        return bool(self.graph_tenant_id and self.graph_client_id and self.graph_client_secret)


settings = Settings()
