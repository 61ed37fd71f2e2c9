import sys
import os

# 将项目根目录加入 sys.path，测试可直接导入各顶层包
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hypothesis import settings

# CI: 更多样例
settings.register_profile("ci", max_examples=200, deadline=None)
# 本地开发默认
settings.register_profile("dev", max_examples=100)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))
