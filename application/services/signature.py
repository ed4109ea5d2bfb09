# application/services/signature.py
from __future__ import annotations

import hashlib


def sign(
    click_trans_id: str,
    service_id: str,
    secret_key: str,
    merchant_trans_id: str,
    merchant_prepare_id: str,
    amount: str,
    action: str,
    sign_time: str,
    *,
    include_prepare_id: bool,
) -> str:
    """
    sign_string を計算する（MD5, 小文字hex 32桁）

    merchant_prepare_id は complete の時だけ連結対象になる。
    """
    source = "".join(
        [
            click_trans_id,
            service_id,
            secret_key,
            merchant_trans_id,
            merchant_prepare_id if include_prepare_id else "",
            amount,
            action,
            sign_time,
        ]
    )
    return hashlib.md5(source.encode("utf-8")).hexdigest()
