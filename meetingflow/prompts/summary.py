"""
Prompt for turning a meeting transcript into the six-field structured summary.
"""


def meeting_summary_prompt(transcript: str) -> str:
    """
    Prompt demanding a strict JSON object with exactly the summary fields.

    Args:
        transcript: Full meeting transcript

    Returns:
        Formatted prompt string
    """
    return f"""以下の会議の文字起こし内容を分析し、指定された項目で情報を整理して厳密にJSON形式で出力してください。JSON以外の前置きや後書きは一切不要です。

{{
  "meeting_title": "会議名（例：〇〇株式会社様 定例会議）",
  "meeting_basics": "会議の基本情報（参加者、場所など、文字起こしから推測できる範囲で記述）",
  "meeting_objective_agenda": "会議の目的と主要なアジェンダ（文字起こしから抽出・要約して記述）",
  "discussions_decisions": "会議での主要な議論と決定事項（文字起こしから抽出・要約し、箇条書きを推奨）",
  "next_schedule": "今後のスケジュールや次のアクションについて（文字起こしから抽出・要約し、箇条書きを推奨）",
  "other_notes": "その他特記事項（上記以外で重要な点や補足事項を記述）"
}}

文字起こし内容：
---
{transcript}
---
出力は上記のJSON形式のみとしてください。説明や前置き、後書きは絶対に含めないでください。"""
