# services/base_service.py
from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from services.storage_service import StorageService

# データモデルを表すジェネリック型を定義
T = TypeVar('T')


class BaseService(Generic[T], ABC):
    """
    ローカルに永続化するサービスクラスの基底となる抽象クラス（ABC）。

    識別子ごとのデータの読み込み・保存・削除の共通インターフェースを定義します。
    具象サービスクラスは、特定のデータモデル（例: SessionCheckpoint）を
    扱うために、このクラスを継承し、抽象メソッドを実装する必要があります。

    Attributes:
        storage_service (StorageService): ローカルストレージサービスへの参照。
    """

    def __init__(self, storage_service: StorageService) -> None:
        """BaseServiceのコンストラクタ。

        Args:
            storage_service (StorageService): ストレージサービスインスタンス。
        """
        self.storage_service = storage_service

    @abstractmethod
    def load(self, identifier: Any) -> Optional[T]:
        """
        指定された識別子のデータを読み込む。

        Args:
            identifier (Any): データを一意に識別するためのキー（例: テストID）。

        Returns:
            Optional[T]: 読み込まれたデータモデルオブジェクト。見つからない場合はNone。
        """

    @abstractmethod
    def save(self, identifier: Any, data: T) -> None:
        """
        データを永続化する。呼び出しから戻った時点で書き込みは完了している。

        Args:
            identifier (Any): データを一意に識別するためのキー。
            data (T): 保存するデータモデルオブジェクト。
        """

    @abstractmethod
    def clear(self, identifier: Any) -> None:
        """指定された識別子のデータを削除する。"""
