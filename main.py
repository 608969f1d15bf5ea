"""
アプリケーションのエントリーポイント。

このスクリプトは、ログ出力を設定したうえでPyQt6アプリケーションを初期化し、
メインウィンドウであるMainWindowを生成・表示して、イベントループを開始します。
また、プロジェクトのルートディレクトリをPythonのパスに追加し、
他のモジュール（ui, servicesなど）を正しくインポートできるように設定します。
"""
import logging
import sys
import os
from PyQt6.QtWidgets import QApplication

# このファイル(main.py)があるディレクトリをモジュール検索パスに追加します。
current_dir: str = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.append(current_dir)

from utils.config import settings
from ui.main_window import MainWindow


def configure_logging(level_name: str) -> None:
    """設定されたレベルでルートロガーを初期化する。"""
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    configure_logging(settings.LOG_LEVEL)

    # 1. PyQtアプリケーションインスタンスを作成します。
    app: QApplication = QApplication(sys.argv)

    # 2. メインウィンドウを作成して表示します。起動と同時にテスト一覧を取得します。
    window: MainWindow = MainWindow()
    window.show()

    # 3. イベントループを開始し、その終了コードでプロセスを終了します。
    sys.exit(app.exec())
