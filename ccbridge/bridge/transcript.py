"""
聊天流水记录模块 - 把收发的消息按天追加写入日志文件。

文件命名：messages-YYYY-MM-DD.jsonl（jsonl 格式）或 messages-YYYY-MM-DD.log（text 格式）。
日期按 UTC 计算，跨天时自动切换文件。只有 jsonl 文件可以被 read() 读回。
"""

import json
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Literal, TextIO

from loguru import logger

from ccbridge.config.schema import TranscriptConfig
from ccbridge.utils.helpers import ensure_dir

Direction = Literal["incoming", "outgoing"]
EntryKind = Literal["text", "tool_use", "command", "error"]

_FILE_DATE = re.compile(r"^messages-(\d{4}-\d{2}-\d{2})\.")


@dataclass
class TranscriptEntry:
    timestamp: str
    chat_key: str
    direction: str
    kind: str
    content: str
    agent_id: str | None = None
    session_handle: str | None = None


class TranscriptLogger:
    """
    聊天流水记录器。

    config.enabled 为 False 时 log() 什么也不做，read() / files() / cleanup() 仍然可用，
    便于 CLI 查看历史文件。
    """

    def __init__(self, config: TranscriptConfig, clock: Callable[[], datetime] | None = None):
        self.config = config
        self.path = Path(config.path).expanduser()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stream: TextIO | None = None
        self._date: str | None = None

    @property
    def extension(self) -> str:
        return "jsonl" if self.config.format == "jsonl" else "log"

    def _file_for(self, date: str) -> Path:
        return self.path / f"messages-{date}.{self.extension}"

    def _ensure_stream(self, date: str) -> TextIO:
        if self._stream is not None and self._date == date:
            return self._stream
        self.close()
        ensure_dir(self.path)
        self._stream = open(self._file_for(date), "a", encoding="utf-8")
        self._date = date
        return self._stream

    def log(
        self,
        chat_key: str,
        direction: Direction,
        kind: EntryKind,
        content: str,
        agent_id: str | None = None,
        session_handle: str | None = None,
    ) -> None:
        """追加一条记录；写入失败只记日志，不影响对话。"""
        if not self.config.enabled:
            return

        now = self._clock()
        entry = TranscriptEntry(
            timestamp=now.isoformat(),
            chat_key=chat_key,
            direction=direction,
            kind=kind,
            content=content,
            agent_id=agent_id,
            session_handle=session_handle,
        )
        try:
            stream = self._ensure_stream(now.strftime("%Y-%m-%d"))
            if self.config.format == "jsonl":
                stream.write(json.dumps(asdict(entry), ensure_ascii=False) + "\n")
            else:
                agent = f" (agent: {agent_id})" if agent_id else ""
                stream.write(f"[{entry.timestamp}] [{chat_key}] [{direction}]{agent}\n{content}\n---\n")
            stream.flush()
        except OSError as e:
            logger.warning(f"Failed to write transcript: {e}")

    def files(self) -> list[Path]:
        """列出所有流水文件，最新的在前。"""
        if not self.path.exists():
            return []
        return sorted(self.path.glob("messages-*"), reverse=True)

    def read(self, chat_key: str | None = None, limit: int = 100) -> list[TranscriptEntry]:
        """
        读取最近的 jsonl 记录（按时间正序返回）。

        参数:
            chat_key: 只返回该对话的记录，None 表示全部
            limit: 最多返回的条数
        """
        entries: list[TranscriptEntry] = []
        for file in self.files():
            if file.suffix != ".jsonl":
                continue
            if len(entries) >= limit:
                break
            lines = file.read_text(encoding="utf-8").splitlines()
            for line in reversed(lines):
                if len(entries) >= limit:
                    break
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                    entry = TranscriptEntry(**data)
                except (json.JSONDecodeError, TypeError):
                    logger.debug(f"Skipping malformed transcript line in {file.name}")
                    continue
                if chat_key is None or entry.chat_key == chat_key:
                    entries.append(entry)
        entries.reverse()
        return entries

    def cleanup(self) -> int:
        """删除超过保留天数的文件，返回删除的文件数。"""
        cutoff = (self._clock() - timedelta(days=self.config.retention_days)).strftime("%Y-%m-%d")
        removed = 0
        for file in self.files():
            match = _FILE_DATE.match(file.name)
            if match and match.group(1) < cutoff:
                if file.name == self._file_for(self._date or "").name:
                    self.close()
                file.unlink()
                removed += 1
        if removed:
            logger.info(f"Removed {removed} transcript file(s) older than {self.config.retention_days} days")
        return removed

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
            self._date = None
