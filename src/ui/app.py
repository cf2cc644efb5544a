"""会員登録フォームのデモアプリ

Streamlit を使用したフォーム検証のデモ。
入力値とアップロードされたアバター画像を Validator に読み込み、
フィールドごとの検証エラーを表示する。
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

# プロジェクトルートをsys.pathに追加（streamlit run で直接起動するため）
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import streamlit as st

from src.validators import (
    MB,
    UploadFile,
    Validator,
    boolean,
    email,
    image_config,
    in_list,
    int_range,
    matches,
    max_length,
    min_length,
    required,
)

# 選択可能なプラン
PLANS = ("free", "standard", "premium")

# アバター画像の検証設定（2MB、最大1024x1024）
AVATAR_CONFIG = image_config(2 * MB, "jpg", "png", max_dimensions=(1024, 1024))

# フィールド名と表示ラベル
FIELD_LABELS: dict[str, str] = {
    "name": "氏名",
    "email": "メールアドレス",
    "username": "ユーザー名",
    "age": "年齢",
    "plan": "プラン",
    "newsletter": "ニュースレター",
    "avatar": "アバター画像",
}


def initialize_session_state() -> None:
    """セッション状態を初期化する

    初回起動時のみデフォルト値を設定し、再実行時は既存値を保持する。
    """
    if "form_errors" not in st.session_state:
        st.session_state["form_errors"] = {}
    if "submissions" not in st.session_state:
        st.session_state["submissions"] = []


def to_upload_file(uploaded_file) -> UploadFile:
    """Streamlit の UploadedFile を UploadFile に変換する"""
    return UploadFile.from_bytes(
        uploaded_file.name,
        uploaded_file.getvalue(),
        uploaded_file.type or "application/octet-stream",
    )


def build_validator(values: dict[str, str], uploaded_file=None) -> Validator:
    """入力値とアップロードファイルから Validator を生成する

    Args:
        values: フィールド名 → 入力値
        uploaded_file: Streamlit の UploadedFile（未選択時は None）
    """
    files = {}
    if uploaded_file is not None:
        files["avatar"] = to_upload_file(uploaded_file)
    return Validator(values=values, files=files)


def validate_signup(validator: Validator) -> dict | None:
    """会員登録フォームを検証する

    Returns:
        検証済みの登録内容。エラーがある場合は None。
    """
    name = validator.string("name", required, max_length(50))
    address = validator.string("email", required, email)
    username = validator.string(
        "username",
        required,
        min_length(3),
        max_length(20),
        matches(r"^[a-z0-9_]+$", "Use lowercase letters, digits and underscores only"),
    )
    age = validator.integer("age", required, int_range(13, 120))
    plan = validator.string("plan", required, in_list(PLANS))
    newsletter = validator.string("newsletter", boolean)
    avatar = validator.image("avatar", AVATAR_CONFIG)

    if not validator.valid():
        return None

    return {
        "name": name,
        "email": address,
        "username": username,
        "age": age,
        "plan": plan,
        "newsletter": newsletter.strip().lower() in ("1", "t", "true"),
        "avatar": avatar.filename,
        "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    }


def process_submission(values: dict[str, str], uploaded_file=None) -> bool:
    """送信内容を検証し、結果を session_state に保存する

    Returns:
        検証に成功したかどうか
    """
    validator = build_validator(values, uploaded_file)
    submission = validate_signup(validator)

    st.session_state["form_errors"] = dict(validator.errors)
    if submission is None:
        return False

    # 登録履歴に追加（イミュータブルに新しいリストを作成）
    st.session_state["submissions"] = [
        *st.session_state["submissions"],
        submission,
    ]
    return True


def render_header() -> None:
    """ページヘッダーを描画する"""
    st.title("会員登録フォーム")


def render_form() -> tuple[bool, dict[str, str], object]:
    """登録フォームを描画する

    Returns:
        (送信ボタンが押されたか, 入力値, アップロードファイル) のタプル
    """
    with st.form("signup"):
        values = {
            "name": st.text_input(FIELD_LABELS["name"]),
            "email": st.text_input(FIELD_LABELS["email"]),
            "username": st.text_input(FIELD_LABELS["username"]),
            "age": st.text_input(FIELD_LABELS["age"]),
            "plan": st.selectbox(FIELD_LABELS["plan"], PLANS) or "",
            "newsletter": str(st.checkbox(FIELD_LABELS["newsletter"])).lower(),
        }
        uploaded_file = st.file_uploader(
            FIELD_LABELS["avatar"],
            type=["jpg", "jpeg", "png"],
            help="対応形式: JPG, JPEG, PNG（最大2MB、1024x1024まで）",
        )
        submitted = st.form_submit_button("登録", type="primary")
    return submitted, values, uploaded_file


def render_errors() -> None:
    """検証エラーをフィールドごとに描画する"""
    errors = st.session_state["form_errors"]
    for field, message in errors.items():
        label = FIELD_LABELS.get(field, field)
        st.error(f"{label}: {message}")


def render_submissions() -> None:
    """登録履歴を描画する"""
    st.subheader("登録履歴")

    submissions = st.session_state["submissions"]

    if not submissions:
        st.info("まだ登録がありません。")
        return

    for entry in reversed(submissions):
        st.write(
            f"- {entry['username']} ({entry['email']}, {entry['plan']}) "
            f"{entry['timestamp']}"
        )


def main() -> None:
    """アプリケーションのメインエントリポイント"""
    st.set_page_config(
        page_title="会員登録フォーム",
        page_icon="",
        layout="centered",
    )

    initialize_session_state()

    render_header()

    submitted, values, uploaded_file = render_form()
    if submitted and process_submission(values, uploaded_file):
        st.success("登録が完了しました。")

    render_errors()

    render_submissions()


if __name__ == "__main__":
    main()
