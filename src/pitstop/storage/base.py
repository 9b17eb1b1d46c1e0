from abc import ABC, abstractmethod

from result import Err, Ok, Result

from pitstop.util.dirs import ensure_dirs, env_int, load_env


class SlotStore(ABC):
    """ホスト側キーバリューストレージ (スロット) の抽象基底クラス。

    ブラウザの localStorage 相当で、1スロットに1つの文字列値を保持する。
    実装クラスは、以下のpublicメソッドを提供する必要があります。

    Public API:
        - read(): スロットの値を読み込む (無ければ Ok(None))
        - write(): スロットの値を上書きする
        - remove(): スロットを削除する
        - keys(): 存在するスロット名の一覧

    失敗は例外ではなく Err(str) で返す。容量上限 (max_bytes) を超える書き込みも
    Err になる。
    """

    def __init__(
        self,
        data_path: str | None = None,
        *,
        max_bytes: int | None = None,
    ) -> None:
        env = load_env()
        if data_path is None:
            ensure_dirs()
        self.data_path = data_path or env["DATA_PATH"]
        self.max_bytes = max_bytes if max_bytes is not None else env_int(env, "STORAGE_MAX_BYTES")

    @abstractmethod
    def read(self, key: str) -> Result[str | None, str]:
        raise NotImplementedError

    @abstractmethod
    def _write(self, key: str, value: str) -> Result[None, str]:
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> Result[None, str]:
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> Result[list[str], str]:
        raise NotImplementedError

    @abstractmethod
    def _used_bytes(self, *, excluding: str) -> Result[int, str]:
        """key 以外のスロットが使用しているバイト数。"""
        raise NotImplementedError

    def write(self, key: str, value: str) -> Result[None, str]:
        """スロットを value で上書きする。

        Returns:
            Ok(None): 成功時
            Err(str): 失敗時（例: 容量超過、ストレージに書き込めない）
        """
        if self.max_bytes > 0:
            match self._used_bytes(excluding=key):
                case Ok(used):
                    size = len(key.encode("utf-8")) + len(value.encode("utf-8"))
                    if used + size > self.max_bytes:
                        return Err(f"Storage quota exceeded: {used + size} > {self.max_bytes} bytes ({key})")
                case Err(e):
                    return Err(e)
        return self._write(key, value)
