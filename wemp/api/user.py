"""User management calls: profile lookup, followers, remarks, blacklist."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from wemp.api.client import WechatMpClient
from wemp.constants import MAX_BATCH_USER_INFO, MAX_BLACKLIST_BATCH
from wemp.errors import Result, ValidationError, err, ok


@dataclass(slots=True)
class UserInfo:
    open_id: str
    subscribed: bool = False
    nickname: str = ""
    sex: int = 0
    city: str = ""
    province: str = ""
    country: str = ""
    avatar_url: str = ""
    language: str = ""
    subscribe_time: int = 0
    union_id: str | None = None
    remark: str = ""
    group_id: int = 0
    tag_ids: list[int] = field(default_factory=list)
    subscribe_scene: str = ""
    qr_scene: int = 0
    qr_scene_str: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserInfo:
        return cls(
            open_id=str(data.get("openid", "")),
            subscribed=bool(data.get("subscribe", 0)),
            nickname=data.get("nickname", "") or "",
            sex=int(data.get("sex", 0) or 0),
            city=data.get("city", "") or "",
            province=data.get("province", "") or "",
            country=data.get("country", "") or "",
            avatar_url=data.get("headimgurl", "") or "",
            language=data.get("language", "") or "",
            subscribe_time=int(data.get("subscribe_time", 0) or 0),
            union_id=data.get("unionid"),
            remark=data.get("remark", "") or "",
            group_id=int(data.get("groupid", 0) or 0),
            tag_ids=list(data.get("tagid_list") or []),
            subscribe_scene=data.get("subscribe_scene", "") or "",
            qr_scene=int(data.get("qr_scene", 0) or 0),
            qr_scene_str=data.get("qr_scene_str", "") or "",
        )


@dataclass(slots=True)
class UserPage:
    """One page of an open id listing (followers or blacklist)."""

    total: int
    count: int
    open_ids: list[str]
    next_open_id: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserPage:
        return cls(
            total=int(data.get("total", 0) or 0),
            count=int(data.get("count", 0) or 0),
            open_ids=list((data.get("data") or {}).get("openid") or []),
            next_open_id=data.get("next_openid", "") or "",
        )


async def get_user_info(client: WechatMpClient, open_id: str, lang: str = "zh_CN") -> Result[UserInfo]:
    result = await client.api_get("/cgi-bin/user/info", {"openid": open_id, "lang": lang})
    if not result.ok:
        return err(result.error)  # type: ignore[arg-type]
    return ok(UserInfo.from_api(result.data or {}))


async def batch_get_user_info(
    client: WechatMpClient,
    open_ids: list[str],
    lang: str = "zh_CN",
) -> Result[list[UserInfo]]:
    if len(open_ids) > MAX_BATCH_USER_INFO:
        return err(ValidationError(f"at most {MAX_BATCH_USER_INFO} users per batch, got {len(open_ids)}"))
    if not open_ids:
        return ok([])

    body = {"user_list": [{"openid": oid, "lang": lang} for oid in open_ids]}
    result = await client.api_post("/cgi-bin/user/info/batchget", body)
    if not result.ok:
        return err(result.error)  # type: ignore[arg-type]
    return ok([UserInfo.from_api(u) for u in (result.data or {}).get("user_info_list", [])])


async def get_followers(client: WechatMpClient, next_open_id: str | None = None) -> Result[UserPage]:
    result = await client.api_get("/cgi-bin/user/get", {"next_openid": next_open_id or None})
    if not result.ok:
        return err(result.error)  # type: ignore[arg-type]
    return ok(UserPage.from_api(result.data or {}))


async def set_user_remark(client: WechatMpClient, open_id: str, remark: str) -> Result[None]:
    result = await client.api_post("/cgi-bin/user/info/updateremark", {"openid": open_id, "remark": remark})
    return ok() if result.ok else err(result.error)  # type: ignore[arg-type]


async def get_blacklist(client: WechatMpClient, begin_open_id: str | None = None) -> Result[UserPage]:
    result = await client.api_post("/cgi-bin/tags/members/getblacklist", {"begin_openid": begin_open_id or ""})
    if not result.ok:
        return err(result.error)  # type: ignore[arg-type]
    return ok(UserPage.from_api(result.data or {}))


async def _blacklist_call(client: WechatMpClient, path: str, open_ids: list[str]) -> Result[None]:
    if len(open_ids) > MAX_BLACKLIST_BATCH:
        return err(ValidationError(f"at most {MAX_BLACKLIST_BATCH} users per blacklist call, got {len(open_ids)}"))
    if not open_ids:
        return ok()
    result = await client.api_post(path, {"openid_list": list(open_ids)})
    return ok() if result.ok else err(result.error)  # type: ignore[arg-type]


async def batch_blacklist_users(client: WechatMpClient, open_ids: list[str]) -> Result[None]:
    return await _blacklist_call(client, "/cgi-bin/tags/members/batchblacklist", open_ids)


async def batch_unblacklist_users(client: WechatMpClient, open_ids: list[str]) -> Result[None]:
    return await _blacklist_call(client, "/cgi-bin/tags/members/batchunblacklist", open_ids)
