# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""usercenter：用户注册/登录/查询/修改/删除服务"""

__version__ = "1.0.0"
