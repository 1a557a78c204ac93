"""服务层: 命令构建/执行、维护页、部署与数据传输编排"""
