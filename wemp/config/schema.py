"""Configuration schema for official account integrations."""

from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_ACCOUNT_ID = "default"


class CsAgentConfig(BaseModel):
    """Customer-service agent used for users who are not paired."""

    enabled: bool = True
    agent_id: str = "wechat-cs"
    model: str | None = None
    system_prompt: str | None = None


class MenuButton(BaseModel):
    name: str
    type: str | None = None
    key: str | None = None
    url: str | None = None
    sub_button: list["MenuButton"] = Field(default_factory=list)


class MenuConfig(BaseModel):
    button: list[MenuButton] = Field(default_factory=list)


class UsageLimitConfig(BaseModel):
    enabled: bool = False
    daily_limit: int = 100
    monthly_limit: int = 1000


class WempAccountConfig(BaseModel):
    """One official account."""

    enabled: bool = False
    app_id: str = ""
    app_secret: str = ""
    token: str = ""  # message signature token
    encoding_aes_key: str = ""  # only for encrypted mode
    webhook_path: str = "/wemp"
    name: str = ""

    # "open": everyone reaches the main agent
    # "pairing": only paired users do, others get the cs agent
    # "allowlist": only open ids in allow_from do, others get the cs agent
    dm_policy: Literal["open", "pairing", "allowlist"] = "pairing"
    allow_from: list[str] = Field(default_factory=list)

    main_agent_id: str = "main"
    cs_agent: CsAgentConfig = Field(default_factory=CsAgentConfig)

    # Overrides WEMP_PAIRING_API_TOKEN for this account
    pairing_api_token: str | None = None

    sync_menu: bool = False
    menu: MenuConfig | None = None
    usage_limit: UsageLimitConfig = Field(default_factory=UsageLimitConfig)


class WempConfig(BaseModel):
    """Root configuration: every configured account, keyed by account id."""

    accounts: dict[str, WempAccountConfig] = Field(default_factory=dict)
    default_account: str = DEFAULT_ACCOUNT_ID

    def get_account(self, account_id: str | None = None) -> WempAccountConfig | None:
        return self.accounts.get(account_id or self.default_account)
