import re
import unicodedata

SEPARATOR = "-"


def parameterize(text: str, separator: str = SEPARATOR) -> str:
    if not text:
        return ""

    # 先转写为 ASCII，无法转写的字符直接丢弃
    clean = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    # 将所有非 URL 安全字符替换为分隔符
    clean = re.sub(r"[^a-zA-Z0-9\-_]+", separator, clean)
    if separator:
        sep = re.escape(separator)
        # 合并连续分隔符并去掉首尾分隔符
        clean = re.sub(rf"{sep}{{2,}}", separator, clean)
        clean = re.sub(rf"^{sep}|{sep}$", "", clean)
    return clean.lower()
