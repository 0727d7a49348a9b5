"""删除流程测试"""

from __future__ import annotations

import pytest

from pkgshelf.core.context import StoreContext
from pkgshelf.core.exceptions import PackageNotFoundError, ReservedNamespaceError
from pkgshelf.core.publisher import Publisher
from pkgshelf.core.remover import Remover


@pytest.fixture()
def populated(ctx: StoreContext, make_package) -> StoreContext:
    pub = Publisher(ctx)
    pub.publish(make_package("@scope/lib", "1.0.0"))
    pub.publish(make_package("@scope/lib", "2.0.0"))
    pub.publish(make_package("left-pad", "1.3.0"), namespace="team")
    return ctx


class TestRemove:
    def test_remove_version(self, populated: StoreContext) -> None:
        result = Remover(populated).remove("@scope/lib@1.0.0")
        assert (result.kind, result.namespace) == ("version", "global")
        reg = populated.index.read()
        assert reg.version_names("global", "@scope/lib") == ["2.0.0"]
        assert not populated.store.version_exists("global", "@scope/lib", "1.0.0")

    def test_remove_last_version_cleans_everything(self, populated: StoreContext) -> None:
        Remover(populated).remove("left-pad@1.3.0", namespace="team")
        assert populated.index.read().get_package("team", "left-pad") is None
        assert populated.store.list_packages("team") == []
        assert populated.store.namespace_exists("team")

    def test_remove_package(self, populated: StoreContext) -> None:
        result = Remover(populated).remove("@scope/lib")
        assert result.kind == "package"
        assert populated.index.read().package_names("global") == []
        assert not (populated.store.namespace_path("global") / "@scope").exists()

    def test_remove_namespace(self, populated: StoreContext) -> None:
        result = Remover(populated).remove("team")
        assert result.kind == "namespace"
        assert not populated.index.read().has_namespace("team")
        assert not populated.store.namespace_exists("team")

    def test_explicit_namespace_means_package(self, populated: StoreContext, make_package) -> None:
        Publisher(populated).publish(make_package("team", "0.0.1"), namespace="team")
        result = Remover(populated).remove("team", namespace="team")
        assert result.kind == "package"
        assert populated.index.read().has_namespace("team")

    def test_missing_targets(self, populated: StoreContext) -> None:
        remover = Remover(populated)
        with pytest.raises(PackageNotFoundError):
            remover.remove("@scope/lib@9.9.9")
        with pytest.raises(PackageNotFoundError):
            remover.remove("ghost")
        with pytest.raises(PackageNotFoundError):
            remover.remove_namespace("ghost")
        assert not populated.lock.is_locked()


class TestGlobalGuard:
    @pytest.mark.parametrize("via", ["remove", "remove_namespace"])
    def test_global_untouched(self, populated: StoreContext, via: str) -> None:
        before = populated.index.path.read_bytes()
        remover = Remover(populated)
        with pytest.raises(ReservedNamespaceError):
            getattr(remover, via)("global")

        assert populated.index.path.read_bytes() == before
        assert populated.store.version_exists("global", "@scope/lib", "1.0.0")
        assert populated.store.version_exists("global", "@scope/lib", "2.0.0")
        assert not populated.lock.is_locked()
