import pytest

from overlay.dom import MenuDocument


MENU_HTML = """
<html><body>
<div id="banner">myUT</div>
<div id="menu">
  <div class="menu-category" onclick="of_change('A')"><img src="folder.gif"> 教務系統</div>
  <a href="#" onclick="of_display('UAA002')"><span>Course</span> Registration</a>
  <a href="#" onclick="of_display('GRD010')">Grade Report</a>
  <div class="menu-category" onclick="of_change('B')">Academics</div>
  <a href="#" onclick="of_display('LIB001')">Library</a>
  <a href="#" onclick="of_display('EMPTY01')"><img src="spacer.gif"></a>
  <div class="menu-category" onclick="of_change('F')">編輯我的最愛</div>
</div>
</body></html>
"""


@pytest.fixture
def menu_html():
    """Sidebar markup shaped like the portal's menu frame."""
    return MENU_HTML


@pytest.fixture
def clicks():
    """Elements the portal's own onclick handlers were invoked on."""
    return []


@pytest.fixture
def document(menu_html, clicks):
    """Menu document whose host clicks are recorded in `clicks`."""
    return MenuDocument.from_html(menu_html, host_click=clicks.append)
