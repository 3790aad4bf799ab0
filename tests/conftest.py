import pytest

from vx.store import ObjectStore

# "hello world\n" as a blob, its one-file tree, and the empty tree
HELLO = b'hello world\n'
HELLO_HASH = '48b9bcbf2d542e22331fcace36d3b565f6cc3eb29468a6ad7c5ef7b8abd223e6'
TEST_TXT_TREE = '54b5166a4f578955d1c8675448999828fce96ff45879881bb4066948942e98e0'
EMPTY_TREE = '7507c7ae0174d953e41495f683d7ccf37dc106b304ff229f8505649dfd3d8fb2'


@pytest.fixture(autouse=True)
def vx_env(monkeypatch):
    monkeypatch.setenv('VX_FSYNC', '0')
    monkeypatch.setenv('VX_AUTHOR', 'Test Author')
    monkeypatch.delenv('VX_DIR', raising=False)
    monkeypatch.delenv('VX_LOG_LEVEL', raising=False)


@pytest.fixture
def store():
    with ObjectStore() as s:
        yield s


@pytest.fixture
def file_store(tmp_path):
    with ObjectStore(str(tmp_path / 'objects.bin'), fsync=False) as s:
        yield s
