# ui/dialogs/result_dialog.py
"""
受験結果を表示するダイアログウィンドウを提供します。
"""
from typing import Optional

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import QDialog, QDialogButtonBox, QGridLayout, QLabel, QVBoxLayout, QWidget

from models.exam_models import FinishResult


class ResultDialog(QDialog):
    """
    正解数と得点を表示するモーダルダイアログ。
    """
    def __init__(self, parent: Optional[QWidget], title: str, result: FinishResult) -> None:
        """
        ResultDialogのコンストラクタ。

        Args:
            parent (Optional[QWidget]): 親ウィジェット。
            title (str): テスト名。
            result (FinishResult): 表示する結果。
        """
        super().__init__(parent)
        self.setWindowTitle("テスト結果")
        self.setModal(True)
        self.setWindowModality(Qt.WindowModality.WindowModal)

        layout = QVBoxLayout(self)
        heading = QLabel(title)
        heading.setStyleSheet("font-size: 14pt; font-weight: bold;")
        layout.addWidget(heading)

        grid = QGridLayout()
        grid.addWidget(QLabel("正解数"), 0, 0)
        self.correct_label = QLabel(f"{result.correct_answers} / {result.total_questions}")
        grid.addWidget(self.correct_label, 0, 1)
        grid.addWidget(QLabel("得点"), 1, 0)
        self.score_label = QLabel(f"{result.score}%")
        grid.addWidget(self.score_label, 1, 1)
        layout.addLayout(grid)

        layout.addWidget(QLabel("お疲れさまでした。このテストは受験済みです。"))

        button_box = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok)
        button_box.accepted.connect(self.accept)
        layout.addWidget(button_box)
