# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""通用基础设施（上下文/错误/日志/路由适配等）

约定：
- 业务函数统一写成 (ctx[, req]) -> result，由 ElegantRouter 负责参数绑定和响应信封
- 业务错误统一通过 AppError 抛出，不在业务层拼客户端文案
- RequestContext 由 middleware 创建，trace_id 写入日志和 X-Trace-ID 响应头
"""

from __future__ import annotations
